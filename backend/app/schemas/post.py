from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime

class PostAuthor(BaseModel):
    id: UUID
    username: str
    first_name: str
    last_name: str
    profile_image: str | None = None

class FeedItem(BaseModel):
    id: UUID
    challenge_id: UUID
    challenge_title: str
    challenge_type: str
    points: int
    author: PostAuthor
    media_url: str  # relative path to /posts/{id}/media
    media_type: str
    caption: str | None = None
    revoked: bool
    created_at: datetime
    likes_count: int
    comments_count: int
    user_liked: bool

class FeedPage(BaseModel):
    items: list[FeedItem]
    limit: int
    page: int
    has_more: bool

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Content is required")
        return v

class CommentPublic(BaseModel):
    id: UUID
    post_id: UUID
    author: PostAuthor
    content: str
    created_at: datetime

class LikeState(BaseModel):
    post_id: UUID
    liked: bool
    likes_count: int
