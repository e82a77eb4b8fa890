"""
Core Mastery Module.

Path-dependent accumulation of per-(user, topic, Bloom level[, chapter])
mastery from a chronological response stream.

Design:
- MasteryKey: identity of a mastery record
- TopicMastery: immutable snapshot of a record
- update_mastery: (key, prior, response) -> new snapshot, never mutates
- fold_responses: sort-then-fold, the only sanctioned recomputation path

The fold is non-commutative: replaying the same responses in a different
order yields a different score, so ordering is checked at the boundary.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from .exceptions import OrderingViolationError
from .models import Response, sort_chronologically

MASTERY_MIN = -100.0
MASTERY_MAX = 100.0

DEFAULT_EMA_ALPHA = 0.3

# Step size applied to the quality score, by Bloom level
BLOOM_MULTIPLIERS: dict[int, float] = {
    1: 10.0,
    2: 10.0,
    3: 10.0,
    4: 9.0,
    5: 9.0,
    6: 9.0,
}


@dataclass(frozen=True)
class MasteryKey:
    """Identity of a mastery record."""

    user_id: str
    topic_id: str
    bloom_level: int
    chapter_id: str | None = None

    @classmethod
    def for_response(cls, response: Response) -> MasteryKey:
        return cls(
            user_id=response.user_id,
            topic_id=response.topic_id,
            bloom_level=response.bloom_level,
            chapter_id=response.chapter_id,
        )

    def matches(self, response: Response) -> bool:
        return self == MasteryKey.for_response(response)

    def __str__(self) -> str:
        chapter = f"/{self.chapter_id}" if self.chapter_id else ""
        return f"{self.user_id}:{self.topic_id}@L{self.bloom_level}{chapter}"


@dataclass(frozen=True)
class TopicMastery:
    """Snapshot of one mastery record."""

    key: MasteryKey
    mastery_score: float = 0.0
    questions_attempted: int = 0
    questions_correct: int = 0
    last_practiced_at: datetime | None = None

    @classmethod
    def empty(cls, key: MasteryKey) -> TopicMastery:
        return cls(key=key)

    @property
    def accuracy(self) -> float:
        if self.questions_attempted == 0:
            return 0.0
        return self.questions_correct / self.questions_attempted

    @property
    def level(self) -> MasteryLevel:
        return MasteryLevel.from_score(self.mastery_score)

    def to_dict(self) -> dict:
        return {
            "user_id": self.key.user_id,
            "topic_id": self.key.topic_id,
            "bloom_level": self.key.bloom_level,
            "chapter_id": self.key.chapter_id,
            "mastery_score": round(self.mastery_score, 2),
            "questions_attempted": self.questions_attempted,
            "questions_correct": self.questions_correct,
            "last_practiced_at": self.last_practiced_at.isoformat() if self.last_practiced_at else None,
        }


class MasteryLevel(str, Enum):
    """Display buckets for a mastery score in [-100, 100]."""

    STRUGGLING = "struggling"  # < 0
    NOVICE = "novice"  # 0-39
    DEVELOPING = "developing"  # 40-69
    PROFICIENT = "proficient"  # 70-79
    MASTERED = "mastered"  # 80+

    @classmethod
    def from_score(cls, score: float) -> MasteryLevel:
        if score < 0:
            return cls.STRUGGLING
        elif score < 40:
            return cls.NOVICE
        elif score < 70:
            return cls.DEVELOPING
        elif score < 80:
            return cls.PROFICIENT
        else:
            return cls.MASTERED

    @property
    def display_name(self) -> str:
        return self.value.title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.STRUGGLING: "red",
            MasteryLevel.NOVICE: "dark_orange",
            MasteryLevel.DEVELOPING: "yellow",
            MasteryLevel.PROFICIENT: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


def _clamp(score: float) -> float:
    return max(MASTERY_MIN, min(MASTERY_MAX, score))


def next_mastery_score(prior_score: float, response: Response, ema_alpha: float = DEFAULT_EMA_ALPHA) -> float:
    """
    Apply one response to a mastery score.

    With a reward decomposition the quality score moves mastery by
    quality * multiplier(bloom). Without one (legacy data) mastery follows an
    exponential moving average toward 100 or 0.
    """
    if response.reward is not None:
        multiplier = BLOOM_MULTIPLIERS[response.bloom_level]
        return _clamp(prior_score + response.reward.quality_score * multiplier)

    target = 100.0 if response.is_correct else 0.0
    return _clamp(ema_alpha * target + (1 - ema_alpha) * prior_score)


def update_mastery(
    key: MasteryKey,
    prior: TopicMastery | None,
    response: Response,
    ema_alpha: float = DEFAULT_EMA_ALPHA,
) -> TopicMastery:
    """
    Fold a single response into a mastery record.

    Args:
        key: Record identity; must match the response
        prior: Existing record, or None to start from zero
        response: The graded response
        ema_alpha: Smoothing factor for the fallback path

    Returns:
        New TopicMastery. The prior snapshot is left untouched.

    Raises:
        ValueError: If the response belongs to a different key
        OrderingViolationError: If the response predates the last folded one
    """
    if not key.matches(response):
        raise ValueError(f"Response {response.response_id} does not belong to {key}")

    current = prior if prior is not None else TopicMastery.empty(key)

    if current.last_practiced_at is not None and response.timestamp < current.last_practiced_at:
        raise OrderingViolationError(key, current.last_practiced_at, response.timestamp)

    return replace(
        current,
        mastery_score=next_mastery_score(current.mastery_score, response, ema_alpha),
        questions_attempted=current.questions_attempted + 1,
        questions_correct=current.questions_correct + (1 if response.is_correct else 0),
        last_practiced_at=response.timestamp,
    )


def fold_responses(
    key: MasteryKey,
    responses: Iterable[Response],
    ema_alpha: float = DEFAULT_EMA_ALPHA,
) -> TopicMastery:
    """
    Recompute a record from scratch.

    Responses for other keys are ignored; the rest are sorted by timestamp
    before folding so the result is deterministic for a given history.
    """
    ordered = sort_chronologically([r for r in responses if key.matches(r)])
    state = TopicMastery.empty(key)
    for response in ordered:
        state = update_mastery(key, state, response, ema_alpha)
    return state


def fold_in_given_order(
    key: MasteryKey,
    responses: Iterable[Response],
    ema_alpha: float = DEFAULT_EMA_ALPHA,
) -> float:
    """Fold scores in the order given, without ordering checks. Used for what-if comparisons."""
    score = 0.0
    for response in responses:
        if key.matches(response):
            score = next_mastery_score(score, response, ema_alpha)
    return score


def has_met_mastery_requirements(
    mastery_score: float,
    questions_correct: int,
    threshold: float = 80.0,
    min_correct: int = 3,
) -> bool:
    """Check whether a record counts as mastered."""
    return mastery_score >= threshold and questions_correct >= min_correct
