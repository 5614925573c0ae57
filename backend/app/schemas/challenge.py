from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Literal
from uuid import UUID
from datetime import datetime

ChallengeTypeLiteral = Literal["exclusive", "open"]
ChallengeStatusLiteral = Literal["available", "in_progress", "completed"]

class ChallengeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    points: int = Field(gt=0)
    challenge_type: ChallengeTypeLiteral = "exclusive"
    image_url: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    @model_validator(mode="after")
    def check_window(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

class ChallengeUpdate(BaseModel):
    # type and assignment state are not editable here
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    points: int | None = Field(default=None, gt=0)
    image_url: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

class SubmissionPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: UUID
    username: str | None = None
    post_id: UUID | None = None
    media_url: str | None = None
    media_type: str | None = None
    caption: str | None = None
    created_at: datetime

class ChallengePublic(BaseModel):
    id: UUID
    title: str
    description: str
    image_url: str | None = None
    points: int
    challenge_type: ChallengeTypeLiteral
    status: ChallengeStatusLiteral
    assigned_to: UUID | None = None
    completed_by: UUID | None = None
    completed_post_id: UUID | None = None
    completed_at: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_at: datetime
    # viewer-relative
    is_mine: bool = False
    has_joined: bool = False
    submissions: list[SubmissionPublic] | None = None

class CompleteRequest(BaseModel):
    media_id: str = Field(min_length=1, max_length=64)
    caption: str | None = Field(default=None, max_length=2000)

class CompleteResponse(BaseModel):
    challenge_id: UUID
    post_id: UUID
    challenge_type: ChallengeTypeLiteral
    points_earned: int
    pending_review: bool

class AwardRequest(BaseModel):
    user_id: UUID

class MediaUploaded(BaseModel):
    media_id: str
    media_type: Literal["photo", "video"]
    mime_type: str
    expires_at: datetime
