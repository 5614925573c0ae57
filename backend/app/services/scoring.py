from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID
from sqlalchemy import select, func, case, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.models.post import Post
from app.models.challenge import Challenge, ChallengeStatus, ChallengeType

# ---------- projection ----------
#
# Points are never stored. A user earns a challenge's points through a
# non-revoked post on a completed challenge when:
#   - exclusive: the post exists (only the completer can have one that stands)
#   - open:      the user is the challenge's awarded winner (completed_by)
# Revokes and deletions are therefore reflected on the very next read.


@dataclass(frozen=True)
class UserStats:
    user_id: UUID
    total_points: int
    challenges_completed: int


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: UUID
    username: str
    first_name: str
    last_name: str
    profile_image: str | None
    total_points: int
    challenges_completed: int


def _earning_condition():
    return and_(
        Challenge.status == ChallengeStatus.COMPLETED.value,
        or_(
            Challenge.challenge_type == ChallengeType.EXCLUSIVE.value,
            and_(
                Challenge.challenge_type == ChallengeType.OPEN.value,
                Challenge.completed_by == User.id,
            ),
        ),
    )


def _stats_query():
    earning = _earning_condition()
    total_points = func.coalesce(func.sum(case((earning, Challenge.points), else_=0)), 0).label("total_points")
    completed = func.count(case((earning, Post.id), else_=None)).label("challenges_completed")
    return (
        select(
            User.id, User.username, User.first_name, User.last_name, User.profile_image,
            total_points, completed,
        )
        .select_from(User)
        .outerjoin(Post, and_(Post.user_id == User.id, Post.revoked.is_(False)))
        .outerjoin(Challenge, Post.challenge_id == Challenge.id)
        .group_by(User.id, User.username, User.first_name, User.last_name, User.profile_image)
    ), total_points, completed


async def compute_user_stats(session: AsyncSession, user_id: UUID) -> UserStats:
    q, _, _ = _stats_query()
    row = (await session.execute(q.where(User.id == user_id))).first()
    if not row:
        return UserStats(user_id=user_id, total_points=0, challenges_completed=0)
    return UserStats(user_id=row.id, total_points=int(row.total_points or 0), challenges_completed=int(row.challenges_completed or 0))


async def leaderboard(session: AsyncSession, limit: int | None = None) -> list[LeaderboardEntry]:
    """All non-admin users: points desc, then completions desc, then username for a stable order."""
    q, total_points, completed = _stats_query()
    q = q.where(User.role != "admin").order_by(total_points.desc(), completed.desc(), User.username.asc())
    if limit:
        q = q.limit(limit)
    rows = (await session.execute(q)).all()
    return [
        LeaderboardEntry(
            user_id=r.id,
            username=r.username,
            first_name=r.first_name,
            last_name=r.last_name,
            profile_image=r.profile_image,
            total_points=int(r.total_points or 0),
            challenges_completed=int(r.challenges_completed or 0),
        ) for r in rows
    ]
