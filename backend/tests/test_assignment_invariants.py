"""Randomized operation sequences checked against the challenge state rules."""
import random

import pytest
from sqlalchemy import select

from app.models.challenge import Challenge, ChallengeStatus, ChallengeType
from app.models.post import Post
from app.services.assignment import AssignmentEngine
from app.services.errors import AssignmentError
from conftest import make_user, make_challenge


async def _check(session):
    rows = (await session.execute(
        select(Challenge).execution_options(populate_existing=True)
    )).scalars().all()
    for ch in rows:
        completion = (ch.completed_by, ch.completed_post_id, ch.completed_at)
        if ch.challenge_type == ChallengeType.EXCLUSIVE.value:
            assert (ch.assigned_to is not None) == (ch.status == ChallengeStatus.IN_PROGRESS.value)
        else:
            assert ch.assigned_to is None
        if ch.status == ChallengeStatus.COMPLETED.value:
            assert all(v is not None for v in completion)
            post = await session.get(Post, ch.completed_post_id, populate_existing=True)
            assert post is not None and not post.revoked and post.user_id == ch.completed_by
        else:
            # reset clears everything together
            assert all(v is None for v in completion)


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_random_operation_sequences_keep_state_consistent(session, clock, seed):
    rng = random.Random(seed)
    users = [await make_user(session) for _ in range(3)]
    challenges = [
        await make_challenge(session, points=10),
        await make_challenge(session, points=20),
        await make_challenge(session, points=30, challenge_type=ChallengeType.OPEN),
    ]
    eng = AssignmentEngine(session, clock=clock)

    for _ in range(80):
        ch = rng.choice(challenges)
        user = rng.choice(users)
        op = rng.choice(["pick", "cancel", "complete", "award", "unassign", "revoke", "delete"])
        posts = (await session.execute(select(Post.id, Post.user_id))).all()
        try:
            if op == "pick":
                await eng.pick(ch.id, user.id)
            elif op == "cancel":
                await eng.cancel(ch.id, user.id)
            elif op == "complete":
                await eng.complete(ch.id, user.id, media_url="k", media_type="photo")
            elif op == "award":
                await eng.award(ch.id, user.id)
            elif op == "unassign":
                await eng.unassign(ch.id)
            elif posts and op == "revoke":
                await eng.revoke_points(rng.choice(posts).id)
            elif posts and op == "delete":
                pid, owner = rng.choice(posts)
                await eng.delete_post(pid, owner)
        except AssignmentError:
            pass
        await _check(session)
