from __future__ import annotations
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from passlib.context import CryptContext
from app.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALG = "HS256"


class TokenError(Exception):
    """Token is malformed, expired, or of the wrong type."""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def _make_token(sub: str, ttl_min: int, token_type: str, **claims: Any) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "type": token_type,
        "jti": uuid.uuid4().hex,  # two tokens minted in the same second still differ
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def make_access_token(sub: str, role: str = "user") -> str:
    # role is informational for clients; the server re-reads it from the users table
    return _make_token(sub, settings.access_ttl_min, "access", role=role)

def make_refresh_token(sub: str) -> str:
    return _make_token(sub, settings.refresh_ttl_min, "refresh")

def decode_token(token: str, expected_type: str) -> uuid.UUID:
    """Returns the subject user id."""
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
    except jwt.PyJWTError as e:
        raise TokenError("Invalid token") from e
    if data.get("type") != expected_type:
        raise TokenError("Wrong token type")
    try:
        return uuid.UUID(str(data.get("sub")))
    except ValueError as e:
        raise TokenError("Invalid token") from e
