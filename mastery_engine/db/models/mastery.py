"""
Record store models.

Plain column types only, so the same schema runs on PostgreSQL and on
SQLite (used by the test suite and local runs).

Tables:
- responses: immutable graded responses
- topic_mastery: one row per (user, topic, bloom level, chapter)
- review_schedules: one row per (user, question)
- question_irt_calibration: empirical item parameters
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ResponseRecord(Base):
    """A graded response. Written once, never updated."""

    __tablename__ = "responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    response_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    topic_id: Mapped[str] = mapped_column(String(128), nullable=False)
    question_id: Mapped[str | None] = mapped_column(String(128), index=True)
    chapter_id: Mapped[str | None] = mapped_column(String(128))
    bloom_level: Mapped[int] = mapped_column(Integer, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    latency_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    retrieval_method: Mapped[str | None] = mapped_column(String(32))
    calibration_score: Mapped[float | None] = mapped_column(Float)

    # Reward decomposition; both null for legacy responses
    calibration_component: Mapped[float | None] = mapped_column(Float)
    recognition_component: Mapped[float | None] = mapped_column(Float)

    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (Index("ix_responses_user_topic_answered", "user_id", "topic_id", "answered_at"),)


class TopicMasteryRecord(Base):
    """Accumulated mastery for one key."""

    __tablename__ = "topic_mastery"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    topic_id: Mapped[str] = mapped_column(String(128), nullable=False)
    bloom_level: Mapped[int] = mapped_column(Integer, nullable=False)
    # Empty string rather than NULL so the unique constraint holds on every backend
    chapter_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    mastery_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    questions_attempted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    questions_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_practiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", "bloom_level", "chapter_id", name="uq_topic_mastery_key"),
    )


class ReviewScheduleRecord(Base):
    """Next review date for one (user, question)."""

    __tablename__ = "review_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    question_id: Mapped[str] = mapped_column(String(128), nullable=False)
    last_reviewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    next_review_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    normalized_calibration: Mapped[float] = mapped_column(Float, nullable=False)
    interval_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    table_version: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "question_id", name="uq_review_schedule_user_question"),)


class QuestionIRTCalibrationRecord(Base):
    """Empirically calibrated 3PL parameters. Only empirical results are stored."""

    __tablename__ = "question_irt_calibration"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    discrimination: Mapped[float] = mapped_column(Float, nullable=False)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False)
    guessing: Mapped[float] = mapped_column(Float, nullable=False)
    p_value: Mapped[float] = mapped_column(Float, nullable=False)
    sample_size: Mapped[int] = mapped_column(Integer, nullable=False)
    unique_user_count: Mapped[int] = mapped_column(Integer, nullable=False)
    calibration_method: Mapped[str] = mapped_column(String(32), nullable=False, default="empirical")
    calibrated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), onupdate=func.now())
