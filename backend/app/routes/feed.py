from __future__ import annotations
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, Query, Response
from minio.error import S3Error
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db import get_session
from app.auth_deps import get_current_user
from app.models.user import User
from app.repositories import challenges as repo
from app.schemas.post import FeedItem, FeedPage, CommentCreate, CommentPublic, LikeState
from app.services import social, storage
from app.services.assignment import AssignmentEngine
from app.services.views import feed_item, post_author
from app.services.errors import AssignmentError, PostNotFound
from app.routes.errors import to_http

router = APIRouter(tags=["feed"])
log = structlog.get_logger()

async def _require_post(session: AsyncSession, post_id: UUID):
    post = await repo.get_post(session, post_id)
    if not post:
        raise to_http(PostNotFound(message="Post not found"))
    return post

@router.get("/feed", response_model=FeedPage)
async def get_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.feed_default_limit, ge=1, le=settings.feed_max_limit),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    rows, has_more = await social.feed_page(session, user.id, page, limit)
    return FeedPage(items=[feed_item(r) for r in rows], page=page, limit=limit, has_more=has_more)

@router.get("/posts/{post_id}", response_model=FeedItem)
async def get_post(post_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    row = await social.get_feed_row(session, user.id, post_id)
    if not row:
        raise to_http(PostNotFound(message="Post not found"))
    return feed_item(row)

@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(post_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    post = await _require_post(session, post_id)
    key = post.media_url
    try:
        await AssignmentEngine(session).delete_post(post_id, user.id)
    except AssignmentError as e:
        raise to_http(e)
    try:
        storage.remove_object(key)
    except S3Error as e:
        # the row is gone; an orphaned object only costs storage
        log.warning("post_media_remove_failed", post_id=str(post_id), code=e.code)
    return Response(status_code=204)

@router.get("/posts/{post_id}/media")
async def get_post_media(post_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    post = await _require_post(session, post_id)
    try:
        data, content_type = storage.get_bytes(post.media_url)
    except FileNotFoundError:
        raise to_http(PostNotFound("not_found", "Media not found"))
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "private, max-age=3600"})

@router.post("/posts/{post_id}/like", response_model=LikeState)
async def like_post(post_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    await _require_post(session, post_id)
    await social.like(session, post_id, user.id)
    return LikeState(post_id=post_id, liked=True, likes_count=await social.likes_count(session, post_id))

@router.delete("/posts/{post_id}/like", response_model=LikeState)
async def unlike_post(post_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    await _require_post(session, post_id)
    await social.unlike(session, post_id, user.id)
    return LikeState(post_id=post_id, liked=False, likes_count=await social.likes_count(session, post_id))

@router.get("/posts/{post_id}/comments", response_model=list[CommentPublic])
async def list_comments(post_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    await _require_post(session, post_id)
    return [
        CommentPublic(id=c.id, post_id=c.post_id, author=post_author(u), content=c.content, created_at=c.created_at)
        for c, u in await social.list_comments(session, post_id)
    ]

@router.post("/posts/{post_id}/comments", response_model=CommentPublic, status_code=201)
async def create_comment(
    post_id: UUID,
    payload: CommentCreate,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    await _require_post(session, post_id)
    c = await social.add_comment(session, post_id, user.id, payload.content)
    return CommentPublic(id=c.id, post_id=c.post_id, author=post_author(user), content=c.content, created_at=c.created_at)
