from __future__ import annotations
from uuid import UUID, uuid4
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_session
from app.auth_deps import get_current_user
from app.models.media import TempMedia
from app.models.user import User
from app.repositories import challenges as repo
from app.schemas.challenge import ChallengePublic, CompleteRequest, CompleteResponse
from app.services.assignment import AssignmentEngine
from app.services.views import hydrate
from app.services.clock import utcnow, as_utc
from app.services.errors import AssignmentError, ChallengeNotFound, MediaError
from app.services.media import ext_for_mime
from app.services import storage
from app.routes.errors import to_http

router = APIRouter(prefix="/challenges", tags=["challenges"])

async def _public(session: AsyncSession, challenge_id: UUID, viewer_id: UUID) -> ChallengePublic:
    ch = await repo.get_challenge(session, challenge_id)
    if not ch:
        raise to_http(ChallengeNotFound(message="Challenge not found"))
    return (await hydrate(session, [ch], viewer_id))[0]

@router.get("", response_model=list[ChallengePublic])
async def list_challenges(session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    chs = await repo.list_visible_challenges(session, user.id, utcnow())
    return await hydrate(session, chs, user.id)

@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    return await _public(session, challenge_id, user.id)

@router.post("/{challenge_id}/pick", response_model=ChallengePublic)
async def pick_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    try:
        await AssignmentEngine(session).pick(challenge_id, user.id)
    except AssignmentError as e:
        raise to_http(e)
    return await _public(session, challenge_id, user.id)

@router.post("/{challenge_id}/cancel", response_model=ChallengePublic)
async def cancel_challenge(challenge_id: UUID, session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    try:
        await AssignmentEngine(session).cancel(challenge_id, user.id)
    except AssignmentError as e:
        raise to_http(e)
    return await _public(session, challenge_id, user.id)

@router.post("/{challenge_id}/complete", response_model=CompleteResponse, status_code=201)
async def complete_challenge(
    challenge_id: UUID,
    payload: CompleteRequest,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    tm = await session.get(TempMedia, payload.media_id)
    if not tm or tm.user_id != user.id or as_utc(tm.expires_at) < utcnow():
        raise to_http(MediaError("media_not_found", "Uploaded media not found or expired"))
    media_type, temp_key = tm.media_type, tm.storage_key
    final_key = f"posts/{challenge_id}/{uuid4().hex}.{ext_for_mime(tm.mime_type)}"

    # promote first so a committed post never points at a missing object
    try:
        storage.move_object(temp_key, final_key)
    except FileNotFoundError:
        raise to_http(MediaError("media_not_found", "Uploaded media not found or expired"))

    try:
        outcome = await AssignmentEngine(session).complete(
            challenge_id, user.id, media_url=final_key, media_type=media_type, caption=payload.caption,
        )
    except Exception as e:
        # give the upload back so the user can retry with the same media_id
        storage.move_object(final_key, temp_key)
        if isinstance(e, AssignmentError):
            raise to_http(e)
        raise

    staged = await session.get(TempMedia, payload.media_id)
    if staged:
        await session.delete(staged)
        await session.commit()

    return CompleteResponse(
        challenge_id=challenge_id,
        post_id=outcome.post_id,
        challenge_type=outcome.challenge_type.value,
        points_earned=outcome.points_earned,
        pending_review=outcome.pending_review,
    )
