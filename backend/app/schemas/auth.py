from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime

class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        v = v.strip().lower()
        if not v.replace("_", "").replace(".", "").isalnum():
            raise ValueError("username may contain letters, digits, '_' and '.' only")
        return v

class LoginRequest(BaseModel):
    username: str
    password: str

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.strip().lower()

class UserPublic(BaseModel):
    id: UUID
    username: str
    first_name: str
    last_name: str
    profile_image: str | None = None
    role: str
    created_at: datetime

class TokenPair(BaseModel):
    access: str
    refresh: str
