from __future__ import annotations
import asyncio
import structlog
from minio.error import S3Error
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from app.db import SessionLocal
from app.models.media import TempMedia
from app.services.clock import utcnow
from app.services.storage import remove_object

log = structlog.get_logger()

async def purge_expired(session: AsyncSession, remove=remove_object) -> int:
    """Delete expired staged uploads (rows and objects). Returns rows removed."""
    now = utcnow()
    expired = (await session.execute(
        select(TempMedia).where(TempMedia.expires_at < now)
    )).scalars().all()
    for tm in expired:
        try:
            remove(tm.storage_key)
        except S3Error as e:
            # row still goes; a dangling object is harmless, a dangling row is not
            log.warning("temp_media_object_remove_failed", media_id=tm.media_id, code=e.code)
    if expired:
        await session.execute(
            delete(TempMedia).where(TempMedia.media_id.in_([tm.media_id for tm in expired]))
        )
    await session.commit()
    log.info("temp_media_purged", count=len(expired))
    return len(expired)

async def _run():
    async with SessionLocal() as session:
        await purge_expired(session)

def purge_temp_media():
    # RQ entry point (sync); run the async coroutine
    asyncio.run(_run())
