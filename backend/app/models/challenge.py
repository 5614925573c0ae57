from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, Uuid, UniqueConstraint, CheckConstraint, func
from app.db import Base


class ChallengeType(str, enum.Enum):
    EXCLUSIVE = "exclusive"  # one assignee at a time
    OPEN = "open"            # many submitters, admin awards one


class ChallengeStatus(str, enum.Enum):
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Challenge(Base):
    __tablename__ = "challenges"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(255))
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    challenge_type: Mapped[str] = mapped_column(String(50), nullable=False, default=ChallengeType.EXCLUSIVE.value, index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=ChallengeStatus.AVAILABLE.value, index=True)
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    completed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    completed_post_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="SET NULL", use_alter=True, name="fk_challenges_completed_post_id")
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("points > 0", name="ck_challenges_points_positive"),
        CheckConstraint("challenge_type IN ('exclusive','open')", name="ck_challenges_type"),
        CheckConstraint("status IN ('available','in_progress','completed')", name="ck_challenges_status"),
    )

    @property
    def kind(self) -> ChallengeType:
        return ChallengeType(self.challenge_type)


class ChallengeSubmission(Base):
    """One user's entry into an open challenge. post_id stays NULL until proof is submitted."""
    __tablename__ = "challenge_submissions"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    post_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("posts.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_submission_once_per_user"),
    )
