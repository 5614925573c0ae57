from __future__ import annotations
from datetime import timedelta
import structlog
from fastapi import APIRouter, Depends, UploadFile, File
from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db import get_session
from app.auth_deps import get_current_user
from app.jobs.purge_temp_media import purge_temp_media
from app.models.media import TempMedia
from app.models.user import User
from app.schemas.challenge import MediaUploaded
from app.services.clock import utcnow
from app.services.errors import MediaError
from app.services.media import classify_upload, ext_for_mime, new_media_id
from app.services import storage
from app.routes.errors import to_http

router = APIRouter(prefix="/media", tags=["media"])
log = structlog.get_logger()

# RQ queue (lazy single instance; Redis.from_url does not connect until used)
_redis = Redis.from_url(settings.redis_url)
q = Queue("default", connection=_redis)

def enqueue_purge() -> None:
    # Best-effort: the next upload enqueues again
    try:
        q.enqueue(purge_temp_media)
    except RedisError as e:
        log.warning("temp_media_purge_enqueue_failed", error=str(e))

@router.post("", response_model=MediaUploaded, status_code=201)
async def upload_media(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    data = await file.read()
    if not data:
        raise to_http(MediaError("unsupported_media", "Empty upload"))
    if len(data) > settings.max_upload_mb * 1024 * 1024:
        raise to_http(MediaError("too_large", f"File exceeds {settings.max_upload_mb} MB"))
    try:
        media_type, mime = classify_upload(file.content_type, data)
    except ValueError as e:
        raise to_http(MediaError("unsupported_media", str(e)))

    media_id = new_media_id()
    key = f"temp/{user.id}/{media_id}.{ext_for_mime(mime)}"
    storage.put_bytes(key, data, mime)

    now = utcnow()
    tm = TempMedia(
        media_id=media_id,
        user_id=user.id,
        storage_key=key,
        media_type=media_type,
        mime_type=mime,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.temp_media_ttl_minutes),
    )
    session.add(tm)
    await session.commit()
    log.info("media_uploaded", media_id=media_id, user_id=str(user.id), media_type=media_type, size=len(data))

    enqueue_purge()
    return MediaUploaded(media_id=media_id, media_type=media_type, mime_type=mime, expires_at=tm.expires_at)
