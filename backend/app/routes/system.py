from __future__ import annotations
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from app.config import settings
from app.db import get_session
from app.services.clock import utcnow

router = APIRouter(tags=["system"])
log = structlog.get_logger()

@router.get("/health")
async def health(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
        db = "ok"
    except SQLAlchemyError as e:
        log.error("health_db_unreachable", error=str(e))
        db = "unavailable"
    return {
        "status": "ok" if db == "ok" else "degraded",
        "db": db,
        "env": settings.environment,
        "time": utcnow().isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "display_name": settings.app_display_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
    }
