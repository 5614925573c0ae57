from __future__ import annotations
from uuid import UUID
import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_session
from app.auth_deps import require_admin
from app.models.challenge import Challenge, ChallengeType
from app.models.user import User
from app.repositories import challenges as repo
from app.schemas.challenge import ChallengeCreate, ChallengeUpdate, ChallengePublic, AwardRequest
from app.schemas.post import FeedItem
from app.services import social
from app.services.assignment import AssignmentEngine
from app.services.views import hydrate, load_submissions, to_public, feed_item
from app.services.clock import as_utc
from app.services.errors import AssignmentError, ChallengeNotFound, PostNotFound
from app.routes.errors import to_http

router = APIRouter(prefix="/admin", tags=["admin"])
log = structlog.get_logger()

async def _require_challenge(session: AsyncSession, challenge_id: UUID) -> Challenge:
    ch = await repo.get_challenge(session, challenge_id)
    if not ch:
        raise to_http(ChallengeNotFound(message="Challenge not found"))
    return ch

@router.post("/challenges", response_model=ChallengePublic, status_code=201)
async def create_challenge(payload: ChallengeCreate, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    ch = Challenge(
        title=payload.title,
        description=payload.description,
        image_url=payload.image_url,
        points=payload.points,
        challenge_type=ChallengeType(payload.challenge_type).value,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    session.add(ch)
    await session.commit()
    await session.refresh(ch)
    log.info("challenge_created", challenge_id=str(ch.id), admin_id=str(admin.id),
             challenge_type=ch.challenge_type, points=ch.points)
    return to_public(ch, admin.id, [] if ch.kind is ChallengeType.OPEN else None)

@router.get("/challenges", response_model=list[ChallengePublic])
async def list_all_challenges(session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    # every challenge regardless of state or window, open ones with their submissions
    return await hydrate(session, await repo.list_all_challenges(session), admin.id)

@router.put("/challenges/{challenge_id}", response_model=ChallengePublic)
async def update_challenge(
    challenge_id: UUID,
    payload: ChallengeUpdate,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
):
    ch = await _require_challenge(session, challenge_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(ch, field, value)
    start, end = as_utc(ch.start_date), as_utc(ch.end_date)
    if start and end and end < start:
        await session.rollback()
        raise to_http(AssignmentError("invalid_window", "end_date must not be before start_date"))
    await session.commit()
    log.info("challenge_updated", challenge_id=str(challenge_id), admin_id=str(admin.id))
    subs = await load_submissions(session, [ch.id])
    return to_public(ch, admin.id, subs.get(ch.id))

@router.delete("/challenges/{challenge_id}", status_code=204)
async def delete_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    await _require_challenge(session, challenge_id)
    # posts, submissions and their likes/comments go with it (FK cascade)
    await session.execute(delete(Challenge).where(Challenge.id == challenge_id))
    await session.commit()
    log.info("challenge_deleted", challenge_id=str(challenge_id), admin_id=str(admin.id))
    return Response(status_code=204)

@router.post("/challenges/{challenge_id}/unassign", response_model=ChallengePublic)
async def unassign_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    try:
        await AssignmentEngine(session).unassign(challenge_id)
    except AssignmentError as e:
        raise to_http(e)
    return (await hydrate(session, [await _require_challenge(session, challenge_id)], admin.id))[0]

@router.post("/challenges/{challenge_id}/award", response_model=ChallengePublic)
async def award_challenge(
    challenge_id: UUID,
    payload: AwardRequest,
    session: AsyncSession = Depends(get_session),
    admin: User = Depends(require_admin),
):
    try:
        await AssignmentEngine(session).award(challenge_id, payload.user_id)
    except AssignmentError as e:
        raise to_http(e)
    return (await hydrate(session, [await _require_challenge(session, challenge_id)], admin.id))[0]

@router.post("/posts/{post_id}/revoke", response_model=FeedItem)
async def revoke_post_points(post_id: UUID, session: AsyncSession = Depends(get_session), admin: User = Depends(require_admin)):
    try:
        await AssignmentEngine(session).revoke_points(post_id)
    except AssignmentError as e:
        raise to_http(e)
    row = await social.get_feed_row(session, admin.id, post_id)
    if not row:
        raise to_http(PostNotFound(message="Post not found"))
    return feed_item(row)
