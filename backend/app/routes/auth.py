from __future__ import annotations
import structlog
from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.db import get_session
from app.auth_deps import get_current_user
from app.models.user import User
from app.schemas.auth import RegisterRequest, LoginRequest, UserPublic, TokenPair
from app.services.views import avatar_path
from app.security import hash_password, verify_password, make_access_token, make_refresh_token, decode_token, TokenError

router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger()

def _public(user: User) -> UserPublic:
    return UserPublic(
        id=user.id, username=user.username, first_name=user.first_name, last_name=user.last_name,
        profile_image=avatar_path(user.id, user.profile_image), role=user.role, created_at=user.created_at,
    )

@router.post("/register", status_code=201, response_model=UserPublic)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_session)):
    exists = await session.scalar(select(User).where(User.username == payload.username))
    if exists:
        raise HTTPException(status_code=409, detail="Username already taken")
    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        role="user",
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # concurrent registration took the username
        await session.rollback()
        raise HTTPException(status_code=409, detail="Username already taken")
    await session.refresh(user)
    log.info("user_registered", user_id=str(user.id), username=user.username)
    return _public(user)

@router.post("/login", response_model=TokenPair)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)):
    user = await session.scalar(select(User).where(User.username == payload.username))
    if not user or not verify_password(payload.password, user.password_hash):
        log.info("login_failed", username=payload.username)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenPair(access=make_access_token(str(user.id), user.role), refresh=make_refresh_token(str(user.id)))

@router.post("/refresh", response_model=TokenPair)
async def refresh(authorization: str | None = Header(None), session: AsyncSession = Depends(get_session)):
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing refresh token")
    try:
        user_id = decode_token(authorization.split(" ", 1)[1], "refresh")
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return TokenPair(access=make_access_token(str(user.id), user.role), refresh=make_refresh_token(str(user.id)))

@router.get("/me", response_model=UserPublic)
async def me(user: User = Depends(get_current_user)):
    return _public(user)
