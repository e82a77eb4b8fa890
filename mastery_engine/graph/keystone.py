"""
Keystone Topic Scoring.

A keystone topic unlocks many others: five or more topics depend on it,
directly or transitively. Keystones get a priority boost when an external
topic selector ranks what to study next. Scoring only reads graph
structure; it never touches mastery data.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from loguru import logger

from mastery_engine.core.exceptions import GraphUnavailableError
from mastery_engine.graph.service import TopicGraphService

KEYSTONE_THRESHOLD = 5
CATEGORY_MIN_CHILDREN = 3

KEYSTONE_BASE_BOOST = 0.1
KEYSTONE_MAX_BOOST = 0.3
CATEGORY_BOOST = 0.1
BRIDGE_BOOST = 0.05
MAX_PRIORITY = 1.0


@dataclass(frozen=True)
class KeystoneScore:
    topic_id: str
    dependent_count: int
    child_count: int
    is_keystone: bool


@dataclass(frozen=True)
class TopicPriority:
    """A topic-selection candidate as ranked by an external scheduler."""

    topic_id: str
    priority: float
    reason: str = ""
    topic_name: str | None = None


class KeystoneScorer:
    """Dependent counts and priority boosts from a topic graph."""

    def __init__(self, graph: TopicGraphService, threshold: int = KEYSTONE_THRESHOLD):
        self.graph = graph
        self.threshold = threshold

    def score(self, topic_id: str) -> KeystoneScore:
        """
        Score a single topic.

        Raises:
            GraphUnavailableError: If the graph cannot be queried
        """
        dependents = self.graph.get_dependent_count(topic_id)
        children = self.graph.get_child_count(topic_id)
        return KeystoneScore(
            topic_id=topic_id,
            dependent_count=dependents,
            child_count=children,
            is_keystone=dependents >= self.threshold,
        )

    def is_keystone(self, topic_id: str) -> bool:
        return self.score(topic_id).is_keystone

    @staticmethod
    def boost_for(score: KeystoneScore) -> tuple[float, str]:
        """Priority boost and the note explaining it."""
        if score.is_keystone:
            boost = min(KEYSTONE_MAX_BOOST, KEYSTONE_BASE_BOOST + score.dependent_count / 100)
            return boost, f"KEYSTONE (unlocks {score.dependent_count} topics)"
        if score.child_count >= CATEGORY_MIN_CHILDREN:
            return CATEGORY_BOOST, f"category ({score.child_count} subtopics)"
        if score.child_count > 0:
            return BRIDGE_BOOST, "bridge topic"
        return 0.0, ""

    def apply_keystone_boost(self, priorities: list[TopicPriority]) -> list[TopicPriority]:
        """
        Boost keystone, category and bridge topics.

        When the graph is unavailable the priorities are returned unchanged.
        """
        if not priorities:
            return priorities

        try:
            scores = [self.score(p.topic_id) for p in priorities]
        except GraphUnavailableError as e:
            logger.warning(f"Keystone scoring skipped, graph unavailable: {e}")
            return priorities

        boosted = []
        for candidate, score in zip(priorities, scores):
            boost, note = self.boost_for(score)
            if boost == 0:
                boosted.append(candidate)
                continue
            reason = f"{candidate.reason} | {note}" if candidate.reason else note
            boosted.append(
                replace(candidate, priority=min(MAX_PRIORITY, candidate.priority + boost), reason=reason)
            )
        return boosted

    def top_keystones(self, limit: int = 10) -> list[KeystoneScore]:
        """Topics with at least one dependent, most dependents first."""
        scores = [self.score(topic.id) for topic in self.graph.list_topics()]
        ranked = sorted(
            (s for s in scores if s.dependent_count > 0),
            key=lambda s: (-s.dependent_count, s.topic_id),
        )
        return ranked[:limit]
