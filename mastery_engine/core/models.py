"""
Response model shared by every stage of the engine.

A Response is an immutable fact recorded once at answer time. Range checks
happen here, at the boundary, so downstream computations can assume valid
inputs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import InvalidResponseError

BLOOM_LEVEL_NAMES = {
    1: "Remember",
    2: "Understand",
    3: "Apply",
    4: "Analyze",
    5: "Evaluate",
    6: "Create",
}


class RetrievalMethod(str, Enum):
    """How the learner arrived at the answer."""

    MEMORY = "memory"
    RECOGNITION = "recognition"
    EDUCATED_GUESS = "educated_guess"
    RANDOM_GUESS = "random_guess"


class RewardDecomposition(BaseModel):
    """Calibration and recognition components of a reward, each in [-1, 1]."""

    model_config = ConfigDict(frozen=True)

    calibration_component: float = Field(ge=-1.0, le=1.0)
    recognition_component: float = Field(ge=-1.0, le=1.0)

    @property
    def quality_score(self) -> float:
        """Mean of the two components."""
        return (self.calibration_component + self.recognition_component) / 2.0


class Response(BaseModel):
    """A single graded answer."""

    model_config = ConfigDict(frozen=True)

    response_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    topic_id: str
    question_id: str | None = None
    chapter_id: str | None = None
    bloom_level: int = Field(ge=1, le=6)
    is_correct: bool
    confidence: int = Field(ge=1, le=5)
    latency_seconds: float = Field(default=0.0, ge=0.0)
    retrieval_method: RetrievalMethod | None = None
    calibration_score: float | None = None
    reward: RewardDecomposition | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC so ordering comparisons never mix kinds
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def bloom_name(self) -> str:
        return BLOOM_LEVEL_NAMES[self.bloom_level]

    @classmethod
    def parse(cls, data: dict[str, Any]) -> Response:
        """
        Build a Response from raw input.

        Raises:
            InvalidResponseError: If any field is missing or out of range
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidResponseError(str(e)) from e


def sort_chronologically(responses: list[Response]) -> list[Response]:
    """Return responses ordered by timestamp ascending (stable for ties)."""
    return sorted(responses, key=lambda r: r.timestamp)
