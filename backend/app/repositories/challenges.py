"""
Typed accessors over challenge, submission and post rows.

No business rules live here: every function runs inside the caller's
session/transaction, and the conditional writes report how many rows they
touched so the caller can tell a lost race from a success.
"""
from __future__ import annotations
from datetime import datetime
from uuid import UUID
from sqlalchemy import select, update, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.challenge import Challenge, ChallengeSubmission, ChallengeStatus, ChallengeType
from app.models.post import Post, Like, Comment

AVAILABLE = ChallengeStatus.AVAILABLE.value
IN_PROGRESS = ChallengeStatus.IN_PROGRESS.value
COMPLETED = ChallengeStatus.COMPLETED.value

# ---------- challenges ----------

async def get_challenge(session: AsyncSession, challenge_id: UUID) -> Challenge | None:
    # populate_existing: never decide on a row cached earlier in the session
    return await session.get(Challenge, challenge_id, populate_existing=True)


async def claim_exclusive(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> int:
    """Available -> InProgress, only while nobody holds it. Returns affected rows."""
    res = await session.execute(
        update(Challenge)
        .where(
            Challenge.id == challenge_id,
            Challenge.challenge_type == ChallengeType.EXCLUSIVE.value,
            Challenge.assigned_to.is_(None),
            Challenge.status == AVAILABLE,
        )
        .values(assigned_to=user_id, status=IN_PROGRESS)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def release_exclusive(session: AsyncSession, challenge_id: UUID, user_id: UUID | None = None) -> int:
    """
    InProgress -> Available.
    With user_id: only if that user holds it (self-cancel).
    Without: any holder (admin unassign).
    """
    q = (
        update(Challenge)
        .where(Challenge.id == challenge_id, Challenge.status == IN_PROGRESS)
        .values(assigned_to=None, status=AVAILABLE)
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        q = q.where(Challenge.assigned_to == user_id)
    res = await session.execute(q)
    return res.rowcount


async def complete_exclusive(session: AsyncSession, challenge_id: UUID, user_id: UUID, post_id: UUID, at: datetime) -> int:
    res = await session.execute(
        update(Challenge)
        .where(
            Challenge.id == challenge_id,
            Challenge.assigned_to == user_id,
            Challenge.status == IN_PROGRESS,
        )
        .values(
            assigned_to=None,
            status=COMPLETED,
            completed_by=user_id,
            completed_post_id=post_id,
            completed_at=at,
        )
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def award_open(session: AsyncSession, challenge_id: UUID, winner_id: UUID, post_id: UUID, at: datetime) -> int:
    res = await session.execute(
        update(Challenge)
        .where(
            Challenge.id == challenge_id,
            Challenge.challenge_type == ChallengeType.OPEN.value,
            Challenge.status != COMPLETED,
        )
        .values(status=COMPLETED, completed_by=winner_id, completed_post_id=post_id, completed_at=at)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def reopen_completed_by_post(session: AsyncSession, challenge_id: UUID, post_id: UUID) -> int:
    """
    Return a challenge to the pool, clearing every assignment/completion field
    in one statement, but only while `post_id` is still its completing post.
    """
    res = await session.execute(
        update(Challenge)
        .where(Challenge.id == challenge_id, Challenge.completed_post_id == post_id)
        .values(
            assigned_to=None,
            status=AVAILABLE,
            completed_by=None,
            completed_post_id=None,
            completed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def list_visible_challenges(session: AsyncSession, viewer_id: UUID, now: datetime) -> list[Challenge]:
    """
    Open challenges, plus exclusive ones that are free, held by the viewer, or
    completed; all restricted to their active window.
    """
    q = (
        select(Challenge)
        .where(
            or_(
                Challenge.challenge_type == ChallengeType.OPEN.value,
                Challenge.status == COMPLETED,
                (Challenge.status == AVAILABLE) & Challenge.assigned_to.is_(None),
                (Challenge.status == IN_PROGRESS) & (Challenge.assigned_to == viewer_id),
            )
        )
        .where(or_(Challenge.start_date.is_(None), Challenge.start_date <= now))
        .where(or_(Challenge.end_date.is_(None), Challenge.end_date >= now))
        .order_by(Challenge.created_at.desc())
    )
    return list((await session.execute(q)).scalars().all())


async def list_all_challenges(session: AsyncSession) -> list[Challenge]:
    return list((await session.execute(select(Challenge).order_by(Challenge.created_at.desc()))).scalars().all())

# ---------- submissions ----------

async def get_submission(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> ChallengeSubmission | None:
    return await session.scalar(
        select(ChallengeSubmission)
        .where(ChallengeSubmission.challenge_id == challenge_id, ChallengeSubmission.user_id == user_id)
        .execution_options(populate_existing=True)
    )


async def insert_submission(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> ChallengeSubmission:
    """Flushes immediately so a (challenge, user) uniqueness violation surfaces here."""
    sub = ChallengeSubmission(challenge_id=challenge_id, user_id=user_id, post_id=None)
    session.add(sub)
    await session.flush()
    return sub


async def delete_unsubmitted(session: AsyncSession, challenge_id: UUID, user_id: UUID) -> int:
    res = await session.execute(
        delete(ChallengeSubmission)
        .where(
            ChallengeSubmission.challenge_id == challenge_id,
            ChallengeSubmission.user_id == user_id,
            ChallengeSubmission.post_id.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def attach_post(session: AsyncSession, challenge_id: UUID, user_id: UUID, post_id: UUID) -> int:
    res = await session.execute(
        update(ChallengeSubmission)
        .where(
            ChallengeSubmission.challenge_id == challenge_id,
            ChallengeSubmission.user_id == user_id,
            ChallengeSubmission.post_id.is_(None),
        )
        .values(post_id=post_id)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def delete_submission_for_post(session: AsyncSession, post_id: UUID) -> int:
    res = await session.execute(
        delete(ChallengeSubmission)
        .where(ChallengeSubmission.post_id == post_id)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def list_submissions(session: AsyncSession, challenge_ids: list[UUID]) -> list[ChallengeSubmission]:
    if not challenge_ids:
        return []
    q = (
        select(ChallengeSubmission)
        .where(ChallengeSubmission.challenge_id.in_(challenge_ids))
        .order_by(ChallengeSubmission.created_at.desc())
    )
    return list((await session.execute(q)).scalars().all())

# ---------- posts ----------

async def get_post(session: AsyncSession, post_id: UUID) -> Post | None:
    return await session.get(Post, post_id, populate_existing=True)


async def insert_post(
    session: AsyncSession,
    *,
    user_id: UUID,
    challenge_id: UUID,
    media_url: str,
    media_type: str,
    caption: str | None,
) -> Post:
    post = Post(
        user_id=user_id,
        challenge_id=challenge_id,
        media_url=media_url,
        media_type=media_type,
        caption=caption,
        revoked=False,
    )
    session.add(post)
    await session.flush()  # post.id for the challenge/submission back-reference
    return post


async def mark_revoked(session: AsyncSession, post_id: UUID) -> int:
    res = await session.execute(
        update(Post)
        .where(Post.id == post_id, Post.revoked.is_(False))
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


async def delete_post_row(session: AsyncSession, post_id: UUID) -> int:
    # likes/comments cascade in Postgres; removed explicitly so other stores agree
    await session.execute(delete(Like).where(Like.post_id == post_id).execution_options(synchronize_session=False))
    await session.execute(delete(Comment).where(Comment.post_id == post_id).execution_options(synchronize_session=False))
    res = await session.execute(delete(Post).where(Post.id == post_id).execution_options(synchronize_session=False))
    return res.rowcount
