from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class UserProfile(BaseModel):
    id: UUID
    username: str
    first_name: str
    last_name: str
    profile_image: str | None = None
    role: str
    created_at: datetime
    # derived at read time, never stored
    total_points: int
    challenges_completed: int

class LeaderboardRow(BaseModel):
    rank: int
    user_id: UUID
    username: str
    first_name: str
    last_name: str
    profile_image: str | None = None
    total_points: int
    challenges_completed: int
