"""
SQLAlchemy 2.0 ORM models for the prediction and user stores.
The monitor reads ``users`` and owns the prediction result and stats columns.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UserORM(Base):
    """Account row owned by the app backend; only delivery fields are read here."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))
    push_token: Mapped[Optional[str]] = mapped_column(Text)
    notification_preferences: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    favorite_teams: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    favorite_match_ids: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PredictionORM(Base):
    __tablename__ = "predictions"
    __table_args__ = (
        UniqueConstraint("user_id", "match_id", name="uq_prediction_user_match"),
        CheckConstraint(
            "predicted_home_score >= 0 AND predicted_away_score >= 0",
            name="chk_prediction_scores",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    match_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    home_team: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    away_team: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    competition: Mapped[Optional[str]] = mapped_column(String(200))
    kickoff: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    predicted_home_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    predicted_away_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    actual_home_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    actual_away_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserStatsORM(Base):
    __tablename__ = "user_stats"

    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_predictions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exact_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    partial_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    result_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    miss_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weekly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    global_rank: Mapped[Optional[int]] = mapped_column(Integer)
    weekly_rank: Mapped[Optional[int]] = mapped_column(Integer)
    achievements: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
    last_points_update: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    week_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    month_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
