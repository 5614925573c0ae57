from __future__ import annotations
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.challenge import Challenge, ChallengeSubmission, ChallengeType
from app.models.post import Post
from app.models.user import User
from app.schemas.challenge import ChallengePublic, SubmissionPublic
from app.schemas.post import FeedItem, PostAuthor


def post_media_path(post_id: UUID) -> str:
    return f"/posts/{post_id}/media"


def avatar_path(user_id: UUID, key: str | None) -> str | None:
    return f"/users/{user_id}/avatar" if key else None


async def load_submissions(session: AsyncSession, challenge_ids: list[UUID]) -> dict[UUID, list[SubmissionPublic]]:
    """Submissions grouped by challenge, newest first, with author and proof."""
    out: dict[UUID, list[SubmissionPublic]] = {cid: [] for cid in challenge_ids}
    if not challenge_ids:
        return out
    q = (
        select(ChallengeSubmission, User.username, Post)
        .join(User, User.id == ChallengeSubmission.user_id)
        .outerjoin(Post, Post.id == ChallengeSubmission.post_id)
        .where(ChallengeSubmission.challenge_id.in_(challenge_ids))
        .order_by(ChallengeSubmission.created_at.desc())
        .execution_options(populate_existing=True)
    )
    for sub, username, post in (await session.execute(q)).all():
        out[sub.challenge_id].append(SubmissionPublic(
            id=sub.id,
            challenge_id=sub.challenge_id,
            user_id=sub.user_id,
            username=username,
            post_id=sub.post_id,
            media_url=post_media_path(post.id) if post else None,
            media_type=post.media_type if post else None,
            caption=post.caption if post else None,
            created_at=sub.created_at,
        ))
    return out


def to_public(ch: Challenge, viewer_id: UUID | None, submissions: list[SubmissionPublic] | None = None) -> ChallengePublic:
    is_open = ch.kind is ChallengeType.OPEN
    has_joined = bool(is_open and submissions and any(s.user_id == viewer_id for s in submissions))
    return ChallengePublic(
        id=ch.id,
        title=ch.title,
        description=ch.description,
        image_url=ch.image_url,
        points=ch.points,
        challenge_type=ch.challenge_type,
        status=ch.status,
        assigned_to=ch.assigned_to,
        completed_by=ch.completed_by,
        completed_post_id=ch.completed_post_id,
        completed_at=ch.completed_at,
        start_date=ch.start_date,
        end_date=ch.end_date,
        created_at=ch.created_at,
        is_mine=viewer_id is not None and viewer_id in (ch.assigned_to, ch.completed_by),
        has_joined=has_joined,
        submissions=submissions if is_open else None,
    )


async def hydrate(session: AsyncSession, challenges: list[Challenge], viewer_id: UUID | None) -> list[ChallengePublic]:
    ids = [c.id for c in challenges if c.kind is ChallengeType.OPEN]
    subs = await load_submissions(session, ids)
    return [to_public(c, viewer_id, subs.get(c.id)) for c in challenges]


def post_author(u: User) -> PostAuthor:
    return PostAuthor(id=u.id, username=u.username, first_name=u.first_name, last_name=u.last_name, profile_image=avatar_path(u.id, u.profile_image))


def feed_item(row) -> FeedItem:
    """Build from a row of app.services.social's feed query."""
    post = row.Post
    return FeedItem(
        id=post.id,
        challenge_id=post.challenge_id,
        challenge_title=row.title,
        challenge_type=row.challenge_type,
        points=row.points,
        author=post_author(row.User),
        media_url=post_media_path(post.id),
        media_type=post.media_type,
        caption=post.caption,
        revoked=post.revoked,
        created_at=post.created_at,
        likes_count=int(row.likes_count or 0),
        comments_count=int(row.comments_count or 0),
        user_liked=bool(row.user_liked),
    )
