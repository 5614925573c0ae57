from __future__ import annotations
from dataclasses import asdict
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile
from minio.error import S3Error
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db import get_session
from app.auth_deps import get_current_user
from app.models.user import User
from app.schemas.user import UserProfile, LeaderboardRow
from app.services.errors import MediaError
from app.services.media import classify_upload, ext_for_mime, new_media_id
from app.services.scoring import compute_user_stats, leaderboard
from app.services.views import avatar_path
from app.services import storage
from app.routes.errors import to_http

router = APIRouter(tags=["users"])
log = structlog.get_logger()

async def _profile(session: AsyncSession, user: User) -> UserProfile:
    stats = await compute_user_stats(session, user.id)
    return UserProfile(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        profile_image=avatar_path(user.id, user.profile_image),
        role=user.role,
        created_at=user.created_at,
        total_points=stats.total_points,
        challenges_completed=stats.challenges_completed,
    )

async def _read_avatar(upload: UploadFile) -> tuple[bytes, str]:
    data = await upload.read()
    if not data:
        raise to_http(MediaError("unsupported_media", "Empty upload"))
    if len(data) > settings.max_upload_mb * 1024 * 1024:
        raise to_http(MediaError("too_large", f"File exceeds {settings.max_upload_mb} MB"))
    try:
        media_type, mime = classify_upload(upload.content_type, data)
    except ValueError as e:
        raise to_http(MediaError("unsupported_media", str(e)))
    if media_type != "photo":
        raise to_http(MediaError("unsupported_media", "Profile image must be a photo"))
    return data, mime

@router.get("/users/me", response_model=UserProfile)
async def get_me(session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    return await _profile(session, user)

@router.put("/users/me", response_model=UserProfile)
async def update_me(
    first_name: str | None = Form(default=None, max_length=255),
    last_name: str | None = Form(default=None, max_length=255),
    profile_image: UploadFile | None = File(default=None, description="Optional jpeg/png avatar"),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    # blank fields keep the current value
    changes = {k: v.strip() for k, v in (("first_name", first_name), ("last_name", last_name)) if v and v.strip()}
    old_key = user.profile_image
    new_key = None
    if profile_image is not None and profile_image.filename:
        data, mime = await _read_avatar(profile_image)
        new_key = f"profiles/{user.id}/{new_media_id()}.{ext_for_mime(mime)}"
        storage.put_bytes(new_key, data, mime)
        changes["profile_image"] = new_key

    for field, value in changes.items():
        setattr(user, field, value)
    await session.commit()
    log.info("profile_updated", user_id=str(user.id), fields=sorted(changes))

    if new_key and old_key:
        try:
            storage.remove_object(old_key)
        except S3Error as e:
            log.warning("profile_image_remove_failed", user_id=str(user.id), code=e.code)
    return await _profile(session, user)

@router.get("/users/{user_id}", response_model=UserProfile)
async def get_user(user_id: UUID, session: AsyncSession = Depends(get_session), _: User = Depends(get_current_user)):
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found"})
    return await _profile(session, user)

@router.get("/users/{user_id}/avatar")
async def get_avatar(user_id: UUID, session: AsyncSession = Depends(get_session), _: User = Depends(get_current_user)):
    user = await session.get(User, user_id)
    if not user or not user.profile_image:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Profile image not found"})
    try:
        data, content_type = storage.get_bytes(user.profile_image)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "Profile image not found"})
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "private, max-age=3600"})

@router.get("/leaderboard", response_model=list[LeaderboardRow])
async def get_leaderboard(
    limit: int | None = Query(None, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    _: User = Depends(get_current_user),
):
    entries = await leaderboard(session, limit)
    return [
        LeaderboardRow(rank=i, **{**asdict(e), "profile_image": avatar_path(e.user_id, e.profile_image)})
        for i, e in enumerate(entries, start=1)
    ]
