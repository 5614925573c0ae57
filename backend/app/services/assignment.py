"""
Challenge assignment state machine.

    Available --pick(excl)--> InProgress --cancel/unassign--> Available
    Available --pick(open)--> (submissions accumulate, status stays Available)
    InProgress --complete(excl)--> Completed --revoke/delete--> Available
    Submission.post set (open) --award--> Completed --revoke/delete--> Available

Every public operation is one transaction (app.db.atomic): business errors
and store errors alike roll back everything the operation wrote. Contended
transitions are expressed as conditional UPDATEs whose rowcount decides the
outcome, never as read-then-write.

A business error rolls back and expires the caller's session state: ORM
objects the caller loaded through the same session must be re-read by id.
"""
from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import atomic
from app.models.challenge import Challenge, ChallengeStatus, ChallengeType
from app.repositories import challenges as repo
from app.services.clock import Clock, utcnow, within_window
from app.services.errors import (
    ChallengeNotFound, PostNotFound, PickError, CancelError, CompleteError,
    AwardError, UnassignError, RevokeError, DeletePostError,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class CompletionOutcome:
    challenge_type: ChallengeType
    post_id: UUID
    points_earned: int
    pending_review: bool


class AssignmentEngine:
    """
    Bound to one request-scoped session. Authorization (who is calling, are
    they an admin) is decided by the caller and trusted here.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock

    async def _load(self, challenge_id: UUID) -> Challenge:
        ch = await repo.get_challenge(self.session, challenge_id)
        if not ch:
            raise ChallengeNotFound(message="Challenge not found")
        return ch

    # ---------- user operations ----------

    async def pick(self, challenge_id: UUID, user_id: UUID) -> None:
        async with atomic(self.session):
            ch = await self._load(challenge_id)
            if not within_window(self.clock(), ch.start_date, ch.end_date):
                raise PickError("out_of_window", "Challenge is outside its active dates")
            if ch.status == ChallengeStatus.COMPLETED.value:
                raise PickError("not_available", "Challenge has already been completed")

            if ch.kind is ChallengeType.OPEN:
                await self._join_open(ch, user_id)
            else:
                await self._claim_exclusive(ch, user_id)

    async def _claim_exclusive(self, ch: Challenge, user_id: UUID) -> None:
        if ch.assigned_to == user_id:
            raise PickError("already_assigned", "You already have this challenge assigned")
        if await repo.claim_exclusive(self.session, ch.id, user_id) == 0:
            raise PickError("already_taken", "Challenge not available (may be assigned to another user)")
        log.info("challenge_picked", challenge_id=str(ch.id), user_id=str(user_id))

    async def _join_open(self, ch: Challenge, user_id: UUID) -> None:
        if await repo.get_submission(self.session, ch.id, user_id):
            raise PickError("already_joined", "You have already joined this challenge")
        try:
            await repo.insert_submission(self.session, ch.id, user_id)
        except IntegrityError:
            # a concurrent join by the same user won the unique (challenge, user) slot
            raise PickError("already_joined", "You have already joined this challenge")
        log.info("open_challenge_joined", challenge_id=str(ch.id), user_id=str(user_id))

    async def cancel(self, challenge_id: UUID, user_id: UUID) -> None:
        async with atomic(self.session):
            ch = await self._load(challenge_id)
            if ch.kind is ChallengeType.OPEN:
                # only an entry without proof can be withdrawn here
                affected = await repo.delete_unsubmitted(self.session, ch.id, user_id)
            else:
                affected = await repo.release_exclusive(self.session, ch.id, user_id)
            if affected == 0:
                raise CancelError("not_yours", "Challenge not found or not assigned to you")
            log.info("challenge_cancelled", challenge_id=str(ch.id), user_id=str(user_id))

    async def complete(
        self,
        challenge_id: UUID,
        user_id: UUID,
        *,
        media_url: str,
        media_type: str,
        caption: str | None = None,
    ) -> CompletionOutcome:
        async with atomic(self.session):
            ch = await self._load(challenge_id)
            kind = ch.kind

            if kind is ChallengeType.EXCLUSIVE:
                if ch.status != ChallengeStatus.IN_PROGRESS.value or ch.assigned_to != user_id:
                    raise CompleteError("not_assigned", "Challenge not found or not assigned to you")
            else:
                sub = await repo.get_submission(self.session, ch.id, user_id)
                if not sub:
                    raise CompleteError("not_joined", "You haven't joined this challenge")
                if sub.post_id is not None:
                    raise CompleteError("already_submitted", "You have already submitted for this challenge")

            post = await repo.insert_post(
                self.session,
                user_id=user_id,
                challenge_id=ch.id,
                media_url=media_url,
                media_type=media_type,
                caption=caption,
            )

            if kind is ChallengeType.EXCLUSIVE:
                # re-checked atomically: a concurrent cancel/unassign since the read loses us the claim
                if await repo.complete_exclusive(self.session, ch.id, user_id, post.id, self.clock()) == 0:
                    raise CompleteError("not_assigned", "Challenge not found or not assigned to you")
                outcome = CompletionOutcome(kind, post.id, int(ch.points), pending_review=False)
            else:
                if await repo.attach_post(self.session, ch.id, user_id, post.id) == 0:
                    raise CompleteError("already_submitted", "You have already submitted for this challenge")
                outcome = CompletionOutcome(kind, post.id, 0, pending_review=True)

        log.info(
            "challenge_completed",
            challenge_id=str(challenge_id),
            user_id=str(user_id),
            post_id=str(outcome.post_id),
            challenge_type=kind.value,
            points_earned=outcome.points_earned,
        )
        return outcome

    async def delete_post(self, post_id: UUID, user_id: UUID) -> None:
        """Owner removes their proof; the challenge returns to the pool if this post completed it."""
        async with atomic(self.session):
            post = await repo.get_post(self.session, post_id)
            if not post:
                raise PostNotFound(message="Post not found")
            if post.user_id != user_id:
                raise DeletePostError("forbidden", "Post not owned by user")
            reopened = await repo.reopen_completed_by_post(self.session, post.challenge_id, post.id)
            await repo.delete_submission_for_post(self.session, post.id)
            await repo.delete_post_row(self.session, post.id)
            challenge_id = post.challenge_id
        log.info("post_deleted", post_id=str(post_id), user_id=str(user_id),
                 challenge_id=str(challenge_id), challenge_reopened=bool(reopened))

    # ---------- admin operations ----------

    async def award(self, challenge_id: UUID, winner_user_id: UUID) -> None:
        async with atomic(self.session):
            ch = await self._load(challenge_id)
            if ch.kind is not ChallengeType.OPEN:
                raise AwardError("not_open", "Only open challenges can be awarded")
            if ch.status == ChallengeStatus.COMPLETED.value:
                raise AwardError("already_awarded", "Challenge has already been awarded")
            sub = await repo.get_submission(self.session, ch.id, winner_user_id)
            if not sub or sub.post_id is None:
                raise AwardError("no_submission", "User has no submission for this challenge")
            post = await repo.get_post(self.session, sub.post_id)
            if not post or post.revoked:
                raise AwardError("no_submission", "User has no submission for this challenge")
            if await repo.award_open(self.session, ch.id, winner_user_id, post.id, self.clock()) == 0:
                raise AwardError("already_awarded", "Challenge has already been awarded")
            points = int(ch.points)
        log.info("challenge_awarded", challenge_id=str(challenge_id), user_id=str(winner_user_id), points=points)

    async def unassign(self, challenge_id: UUID) -> None:
        async with atomic(self.session):
            ch = await self._load(challenge_id)
            if ch.kind is not ChallengeType.EXCLUSIVE or await repo.release_exclusive(self.session, ch.id) == 0:
                raise UnassignError("not_assigned", "Challenge not assigned")
            previous = ch.assigned_to
        log.info("challenge_unassigned", challenge_id=str(challenge_id),
                 previous_user_id=str(previous) if previous else None)

    async def revoke_points(self, post_id: UUID) -> None:
        """
        Admin retraction: the post stays (revoked=True) as an audit record and
        its challenge goes back to the pool for anyone to pick.
        """
        async with atomic(self.session):
            post = await repo.get_post(self.session, post_id)
            if not post:
                raise PostNotFound(message="Post not found")
            if await repo.mark_revoked(self.session, post.id) == 0:
                raise RevokeError("already_revoked", "Post points were already revoked")
            reopened = await repo.reopen_completed_by_post(self.session, post.challenge_id, post.id)
            await repo.delete_submission_for_post(self.session, post.id)
            challenge_id, owner_id = post.challenge_id, post.user_id
        log.info("post_points_revoked", post_id=str(post_id), user_id=str(owner_id),
                 challenge_id=str(challenge_id), challenge_reopened=bool(reopened))
