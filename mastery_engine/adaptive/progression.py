"""
Bloom Level Progression.

Decides whether a learner should advance, maintain, review or regress at a
topic by combining four upstream signals:
- mastery at the current Bloom level (core.mastery)
- calibration trend over recent responses (analytics.trend)
- knowledge transfer into never-attempted topics (graph.knowledge_transfer)
- keystone status of the topic (graph.keystone)

The graph signals are optional. When the graph is unavailable the decision
is made without them and flagged as degraded.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from config import Settings, get_settings
from mastery_engine.analytics.trend import CalibrationMetrics, TrendAnalyzer, TrendDirection, classify_trend
from mastery_engine.core.calibration import overall_calibration_error
from mastery_engine.core.exceptions import GraphUnavailableError
from mastery_engine.core.models import Response
from mastery_engine.db.store import RecordStore
from mastery_engine.graph.keystone import KeystoneScore, KeystoneScorer
from mastery_engine.graph.knowledge_transfer import (
    KnowledgeTransferInferencer,
    StartingLevel,
    TransferEstimate,
    recommend_starting_level,
)

MAX_BLOOM_LEVEL = 6


class ProgressionAction(str, Enum):
    ADVANCE = "advance"
    MAINTAIN = "maintain"
    REVIEW = "review"
    REGRESS = "regress"


@dataclass(frozen=True)
class ProgressionRules:
    min_attempts_for_advancement: int = 5
    mastery_threshold_for_advancement: float = 80.0
    calibration_error_threshold: float = 0.3
    auto_review_threshold: float = 60.0
    auto_regression_threshold: float = 40.0
    trend_min_r_squared: float = 0.3
    trend_min_points: int = 3
    trend_slope_epsilon: float = 0.01

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ProgressionRules:
        return cls(**(settings or get_settings()).get_progression_rules())


@dataclass
class UserProgress:
    """A learner's standing at one topic."""

    user_id: str
    topic_id: str
    current_bloom_level: int
    total_attempts: int
    mastery_scores: dict[int, float] = field(default_factory=dict)
    calibration_error: float = 0.0

    @property
    def current_mastery(self) -> float:
        return self.mastery_scores.get(self.current_bloom_level, 0.0)


@dataclass
class ProgressionDecision:
    action: ProgressionAction
    current_level: int
    target_level: int
    confidence: float
    reason: str
    metrics: dict[str, Any] = field(default_factory=dict)
    transfer: TransferEstimate | None = None
    keystone: KeystoneScore | None = None
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "current_level": self.current_level,
            "target_level": self.target_level,
            "confidence": round(self.confidence, 3),
            "reason": self.reason,
            "metrics": self.metrics,
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class LevelReadiness:
    ready: bool
    reason: str


def load_progress(
    store: RecordStore,
    user_id: str,
    topic_id: str,
    current_bloom_level: int | None = None,
) -> tuple[UserProgress, list[Response]]:
    """
    Build a UserProgress and the matching history from the record store.

    Without an explicit level, the highest Bloom level practiced is used
    (level 1 for a never-attempted topic).
    """
    records = [m for m in store.list_masteries(user_id) if m.key.topic_id == topic_id]

    scores: dict[int, list[float]] = {}
    attempts: dict[int, int] = {}
    for record in records:
        level = record.key.bloom_level
        scores.setdefault(level, []).append(record.mastery_score)
        attempts[level] = attempts.get(level, 0) + record.questions_attempted

    if current_bloom_level is None:
        current_bloom_level = max(attempts) if attempts else 1

    history = store.get_response_history(user_id, topic_id, bloom_level=current_bloom_level)
    progress = UserProgress(
        user_id=user_id,
        topic_id=topic_id,
        current_bloom_level=current_bloom_level,
        total_attempts=attempts.get(current_bloom_level, 0),
        mastery_scores={level: sum(values) / len(values) for level, values in scores.items()},
        calibration_error=overall_calibration_error((r.confidence, r.is_correct) for r in history),
    )
    return progress, history


def calculate_level_mastery(responses: Iterable[Response]) -> int:
    """
    Mastery (0-100) at one Bloom level from its responses alone.

    Accuracy, less a calibration penalty of half the mean calibration error,
    capped at 20 points. Rounded half up.
    """
    responses = list(responses)
    if not responses:
        return 0

    accuracy = sum(1 for r in responses if r.is_correct) / len(responses)
    penalty = min(0.2, overall_calibration_error((r.confidence, r.is_correct) for r in responses) * 0.5)
    score = max(0.0, min(100.0, (accuracy - penalty) * 100))
    return math.floor(score + 0.5)


class ProgressionEvaluator:
    """
    Advance / maintain / review / regress decision table.

    Args:
        rules: Thresholds (defaults from settings)
        transfer: Knowledge transfer inferencer, optional
        keystones: Keystone scorer, optional
        store: Record store used for transfer estimates
    """

    def __init__(
        self,
        rules: ProgressionRules | None = None,
        transfer: KnowledgeTransferInferencer | None = None,
        keystones: KeystoneScorer | None = None,
        store: RecordStore | None = None,
        history_limit: int | None = 50,
    ):
        self.rules = rules or ProgressionRules.from_settings()
        self.transfer = transfer
        self.keystones = keystones
        self.store = store
        self.trend = TrendAnalyzer(
            min_points=self.rules.trend_min_points,
            min_r_squared=self.rules.trend_min_r_squared,
            slope_epsilon=self.rules.trend_slope_epsilon,
            history_limit=history_limit,
        )

    def evaluate(
        self,
        progress: UserProgress,
        history: list[Response] | None = None,
        metrics: CalibrationMetrics | None = None,
    ) -> ProgressionDecision:
        """
        Recommend the next Bloom level for a learner at a topic.

        Args:
            progress: Current standing
            history: Chronological responses at the current level
            metrics: Precomputed trend metrics; derived from history when omitted
        """
        if metrics is None:
            metrics, direction = self.trend.analyze(history or [])
        else:
            direction = self._direction(metrics)

        keystone, degraded = self._keystone(progress.topic_id)

        if progress.total_attempts == 0:
            decision = self._cold_start(progress, direction)
            decision.degraded = decision.degraded or degraded
        else:
            decision = self._decide(progress, direction)
            decision.degraded = degraded

        decision.keystone = keystone
        decision.metrics.update(
            {
                "mastery_score": progress.current_mastery,
                "attempts": progress.total_attempts,
                "calibration_error": progress.calibration_error,
                "trend": direction.value,
                "trend_slope": metrics.slope,
                "trend_r_squared": metrics.r_squared,
                "trend_points": metrics.count,
            }
        )
        if keystone is not None:
            decision.metrics["dependent_count"] = keystone.dependent_count
            if keystone.is_keystone:
                decision.reason += f" Keystone topic (unlocks {keystone.dependent_count} topics)."
        return decision

    def recommended_level(self, progress: UserProgress, history: list[Response] | None = None) -> int:
        """Bloom level for the next session."""
        return self.evaluate(progress, history).target_level

    def should_advance(self, progress: UserProgress, history: list[Response] | None = None) -> bool:
        return self.evaluate(progress, history).action == ProgressionAction.ADVANCE

    def is_ready_for_level(self, progress: UserProgress, target_level: int) -> LevelReadiness:
        """
        Gate access to a Bloom level.

        Level 1 is always open. Any higher level needs the advancement
        threshold met at the level below it, and levels cannot be skipped.
        """
        if target_level < 1 or target_level > MAX_BLOOM_LEVEL:
            return LevelReadiness(False, "Invalid Bloom level")
        if target_level == 1:
            return LevelReadiness(True, "Level 1 is always accessible")

        threshold = self.rules.mastery_threshold_for_advancement
        previous = target_level - 1
        previous_mastery = progress.mastery_scores.get(previous, 0.0)
        if previous_mastery < threshold:
            return LevelReadiness(
                False,
                f"Must achieve {threshold:g}% mastery at Level {previous} (currently {previous_mastery:.1f}%)",
            )

        current = progress.current_bloom_level
        if target_level == current:
            return LevelReadiness(True, "Currently at this level")
        if target_level > current + 1:
            return LevelReadiness(False, f"Cannot skip levels. Must complete Level {current + 1} first")
        return LevelReadiness(True, "Ready to advance")

    def _direction(self, metrics: CalibrationMetrics) -> TrendDirection:
        return classify_trend(
            metrics,
            self.rules.trend_min_points,
            self.rules.trend_min_r_squared,
            self.rules.trend_slope_epsilon,
        )

    # =========================================================================
    # DECISION TABLE
    # =========================================================================

    def _decide(self, progress: UserProgress, direction: TrendDirection) -> ProgressionDecision:
        rules = self.rules
        level = progress.current_bloom_level
        mastery = progress.current_mastery
        attempts = progress.total_attempts
        error = progress.calibration_error

        if mastery < rules.auto_regression_threshold and level > 1:
            return ProgressionDecision(
                action=ProgressionAction.REGRESS,
                current_level=level,
                target_level=level - 1,
                confidence=0.9,
                reason=(
                    f"Mastery ({mastery:.1f}%) is below regression threshold "
                    f"({rules.auto_regression_threshold:g}%). Returning to Level {level - 1} to rebuild foundation."
                ),
            )

        if mastery < rules.auto_review_threshold:
            return ProgressionDecision(
                action=ProgressionAction.REVIEW,
                current_level=level,
                target_level=level,
                confidence=0.8,
                reason=(
                    f"Mastery ({mastery:.1f}%) is below review threshold "
                    f"({rules.auto_review_threshold:g}%). Continue practicing at Level {level}."
                ),
            )

        if (
            mastery >= rules.mastery_threshold_for_advancement
            and attempts >= rules.min_attempts_for_advancement
            and error <= rules.calibration_error_threshold
            and level < MAX_BLOOM_LEVEL
        ):
            return ProgressionDecision(
                action=ProgressionAction.ADVANCE,
                current_level=level,
                target_level=level + 1,
                confidence=self._advancement_confidence(mastery, attempts, error, direction),
                reason=(
                    f"Mastery ({mastery:.1f}%) exceeds advancement threshold "
                    f"({rules.mastery_threshold_for_advancement:g}%) with {attempts} attempts. "
                    f"Ready for Level {level + 1}."
                ),
            )

        return ProgressionDecision(
            action=ProgressionAction.MAINTAIN,
            current_level=level,
            target_level=level,
            confidence=0.7,
            reason=self._maintain_reason(progress, direction),
        )

    def _advancement_confidence(
        self,
        mastery: float,
        attempts: int,
        calibration_error: float,
        direction: TrendDirection,
    ) -> float:
        rules = self.rules
        confidence = 0.5
        confidence += min(0.3, (mastery - rules.mastery_threshold_for_advancement) / 100)
        confidence += min(0.2, (attempts - rules.min_attempts_for_advancement) / 20)
        confidence += max(0.0, (rules.calibration_error_threshold - calibration_error) * 0.5)

        if direction == TrendDirection.IMPROVING:
            confidence += 0.1
        elif direction == TrendDirection.DECLINING:
            confidence -= 0.1

        return max(0.3, min(1.0, confidence))

    def _maintain_reason(self, progress: UserProgress, direction: TrendDirection) -> str:
        rules = self.rules
        reasons = []

        if progress.current_mastery < rules.mastery_threshold_for_advancement:
            reasons.append(
                f"Mastery ({progress.current_mastery:.1f}%) has not reached advancement threshold "
                f"({rules.mastery_threshold_for_advancement:g}%)"
            )
        if progress.total_attempts < rules.min_attempts_for_advancement:
            reasons.append(
                f"Need more practice ({progress.total_attempts}/{rules.min_attempts_for_advancement} attempts)"
            )
        if progress.calibration_error > rules.calibration_error_threshold:
            reasons.append(
                f"Confidence calibration needs improvement (error: {progress.calibration_error * 100:.1f}%)"
            )
        if progress.current_bloom_level == MAX_BLOOM_LEVEL:
            reasons.append("Already at maximum Bloom level")
        if direction == TrendDirection.DECLINING:
            reasons.append("Calibration trend is declining")

        if not reasons:
            return f"Continue practicing at Level {progress.current_bloom_level} to reinforce mastery"
        return "; ".join(reasons)

    # =========================================================================
    # GRAPH SIGNALS
    # =========================================================================

    def _cold_start(self, progress: UserProgress, direction: TrendDirection) -> ProgressionDecision:
        """No attempts yet: start where knowledge transfer suggests."""
        estimate: TransferEstimate | None = None
        degraded = False

        if self.transfer is not None and self.store is not None:
            try:
                estimate = self.transfer.estimate_topic(progress.user_id, progress.topic_id, self.store)
            except GraphUnavailableError as e:
                logger.warning(f"Knowledge transfer skipped for {progress.topic_id}, graph unavailable: {e}")
                degraded = True

        starting = (
            recommend_starting_level(estimate)
            if estimate is not None
            else StartingLevel(1, "Cold start - no related knowledge")
        )

        return ProgressionDecision(
            action=ProgressionAction.MAINTAIN,
            current_level=progress.current_bloom_level,
            target_level=starting.bloom_level,
            confidence=0.5,
            reason=f"No attempts yet. {starting.reason}.",
            metrics={"transfer_estimate": estimate.total if estimate else 0.0},
            transfer=estimate,
            degraded=degraded,
        )

    def _keystone(self, topic_id: str) -> tuple[KeystoneScore | None, bool]:
        if self.keystones is None:
            return None, False
        try:
            return self.keystones.score(topic_id), False
        except GraphUnavailableError as e:
            logger.warning(f"Keystone scoring skipped for {topic_id}, graph unavailable: {e}")
            return None, True
