"""Feed, likes and comments. Revoked posts stay visible with their flag set."""
from __future__ import annotations
from uuid import UUID
import structlog
from sqlalchemy import select, func, delete, exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.post import Post, Like, Comment
from app.models.user import User
from app.models.challenge import Challenge

log = structlog.get_logger()


def _feed_query(viewer_id: UUID):
    likes_count = (
        select(func.count()).select_from(Like).where(Like.post_id == Post.id).scalar_subquery()
    )
    comments_count = (
        select(func.count()).select_from(Comment).where(Comment.post_id == Post.id).scalar_subquery()
    )
    user_liked = exists().where(Like.post_id == Post.id, Like.user_id == viewer_id)
    return (
        select(
            Post,
            User,
            Challenge.title,
            Challenge.challenge_type,
            Challenge.points,
            likes_count.label("likes_count"),
            comments_count.label("comments_count"),
            user_liked.label("user_liked"),
        )
        .join(User, User.id == Post.user_id)
        .join(Challenge, Challenge.id == Post.challenge_id)
        .execution_options(populate_existing=True)
    )


async def feed_page(session: AsyncSession, viewer_id: UUID, page: int, limit: int) -> tuple[list, bool]:
    """Newest first. Fetches one extra row to report has_more."""
    q = _feed_query(viewer_id).order_by(Post.created_at.desc(), Post.id.desc()).limit(limit + 1).offset((page - 1) * limit)
    rows = (await session.execute(q)).all()
    return rows[:limit], len(rows) > limit


async def get_feed_row(session: AsyncSession, viewer_id: UUID, post_id: UUID):
    return (await session.execute(_feed_query(viewer_id).where(Post.id == post_id))).first()


async def like(session: AsyncSession, post_id: UUID, user_id: UUID) -> None:
    # idempotent: liking twice is not an error
    if await session.get(Like, (user_id, post_id), populate_existing=True) is not None:
        return
    session.add(Like(user_id=user_id, post_id=post_id))
    try:
        await session.commit()
    except IntegrityError:
        # concurrent like by the same user landed first
        await session.rollback()
        return
    log.info("post_liked", post_id=str(post_id), user_id=str(user_id))


async def unlike(session: AsyncSession, post_id: UUID, user_id: UUID) -> None:
    await session.execute(delete(Like).where(Like.post_id == post_id, Like.user_id == user_id))
    await session.commit()


async def likes_count(session: AsyncSession, post_id: UUID) -> int:
    return int(await session.scalar(select(func.count()).select_from(Like).where(Like.post_id == post_id)) or 0)


async def list_comments(session: AsyncSession, post_id: UUID) -> list[tuple[Comment, User]]:
    q = (
        select(Comment, User)
        .join(User, User.id == Comment.user_id)
        .where(Comment.post_id == post_id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    return [(c, u) for c, u in (await session.execute(q)).all()]


async def add_comment(session: AsyncSession, post_id: UUID, user_id: UUID, content: str) -> Comment:
    comment = Comment(post_id=post_id, user_id=user_id, content=content)
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    log.info("comment_created", post_id=str(post_id), user_id=str(user_id), comment_id=str(comment.id))
    return comment
