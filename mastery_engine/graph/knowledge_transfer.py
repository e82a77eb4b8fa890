"""
Knowledge Transfer Inference.

Mastering a topic (mastery >= 70) implies partial understanding of its
graph neighbours. Each relationship kind has a linear ramp
base + (mastery - 70) / divisor, capped:

    sibling  15-25   same parent, different specifics
    cousin    8-15   same grandparent (first 10 only)
    parent   10-18   specifics help with the general topic
    child     5-12   general knowledge helps with specifics

Aggregated transfer into a single topic is capped at 40: inferred
knowledge never replaces actual practice.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from config import Settings
from mastery_engine.db.store import RecordStore
from mastery_engine.graph.service import TopicGraphService

SOURCE_MASTERY_THRESHOLD = 70.0
AGGREGATE_CAP = 40.0
COUSIN_LIMIT = 10


class RelationshipKind(str, Enum):
    SIBLING = "sibling"
    COUSIN = "cousin"
    PARENT = "parent"
    CHILD = "child"


@dataclass(frozen=True)
class TransferRule:
    base: float
    divisor: float
    cap: float

    def boost(self, source_mastery: float, threshold: float = SOURCE_MASTERY_THRESHOLD) -> float:
        return min(self.cap, self.base + (source_mastery - threshold) / self.divisor)


TRANSFER_RULES: dict[RelationshipKind, TransferRule] = {
    RelationshipKind.SIBLING: TransferRule(base=15.0, divisor=3.0, cap=25.0),
    RelationshipKind.COUSIN: TransferRule(base=8.0, divisor=4.0, cap=15.0),
    RelationshipKind.PARENT: TransferRule(base=10.0, divisor=3.5, cap=18.0),
    RelationshipKind.CHILD: TransferRule(base=5.0, divisor=5.0, cap=12.0),
}


@dataclass(frozen=True)
class InferredTransfer:
    source_topic_id: str
    target_topic_id: str
    target_name: str
    relationship: RelationshipKind
    boost: float

    @property
    def source_label(self) -> str:
        return f"{self.source_topic_id} ({self.relationship.value})"


@dataclass
class TransferEstimate:
    """Estimated understanding of a topic from direct practice plus transfer."""

    topic_id: str
    baseline: float = 0.0
    transfer_boost: float = 0.0
    sources: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return min(100.0, self.baseline + self.transfer_boost)


@dataclass(frozen=True)
class StartingLevel:
    bloom_level: int
    reason: str


class KnowledgeTransferInferencer:
    """
    Infer mastery boosts from the topic graph.

    Args:
        graph: Graph query capability
        source_threshold: Minimum source mastery before anything transfers
        aggregate_cap: Maximum total boost for one target topic
        cousin_limit: Number of cousins considered per source
    """

    def __init__(
        self,
        graph: TopicGraphService,
        source_threshold: float = SOURCE_MASTERY_THRESHOLD,
        aggregate_cap: float = AGGREGATE_CAP,
        cousin_limit: int = COUSIN_LIMIT,
    ):
        self.graph = graph
        self.source_threshold = source_threshold
        self.aggregate_cap = aggregate_cap
        self.cousin_limit = cousin_limit

    @classmethod
    def from_settings(cls, graph: TopicGraphService, settings: Settings) -> KnowledgeTransferInferencer:
        return cls(
            graph,
            source_threshold=settings.transfer_source_threshold,
            aggregate_cap=settings.transfer_aggregate_cap,
            cousin_limit=settings.transfer_cousin_limit,
        )

    def infer_transfer(self, source_topic_id: str, source_mastery: float) -> list[InferredTransfer]:
        """
        Boosts for every topic related to a mastered source.

        Returns an empty list when the source is below the threshold.

        Raises:
            GraphUnavailableError: If the graph cannot be queried
        """
        if source_mastery < self.source_threshold:
            return []

        related = self.graph.get_related_topics(source_topic_id)
        groups = (
            (RelationshipKind.SIBLING, related.siblings),
            (RelationshipKind.COUSIN, related.cousins[: self.cousin_limit]),
            (RelationshipKind.PARENT, related.parents),
            (RelationshipKind.CHILD, related.children),
        )

        inferred = []
        for kind, topics in groups:
            boost = TRANSFER_RULES[kind].boost(source_mastery, self.source_threshold)
            for topic in topics:
                inferred.append(
                    InferredTransfer(
                        source_topic_id=source_topic_id,
                        target_topic_id=topic.id,
                        target_name=topic.name,
                        relationship=kind,
                        boost=boost,
                    )
                )
        return inferred

    def aggregate(
        self,
        target_topic_id: str,
        source_masteries: dict[str, float],
        baseline: float = 0.0,
    ) -> TransferEstimate:
        """
        Sum transfer into one target from every mastered source, capped.

        Only the first relationship found per source counts.
        """
        estimate = TransferEstimate(topic_id=target_topic_id, baseline=baseline)
        total = 0.0

        for source_id, mastery in source_masteries.items():
            if source_id == target_topic_id or mastery < self.source_threshold:
                continue
            match = next(
                (t for t in self.infer_transfer(source_id, mastery) if t.target_topic_id == target_topic_id),
                None,
            )
            if match is not None:
                total += match.boost
                estimate.sources.append(match.source_label)

        estimate.transfer_boost = min(self.aggregate_cap, total)
        return estimate

    def estimate_topic(self, user_id: str, target_topic_id: str, store: RecordStore) -> TransferEstimate:
        """Estimate a user's understanding of a topic from stored mastery."""
        averages = average_topic_mastery(store, user_id)
        baseline = averages.pop(target_topic_id, 0.0)
        estimate = self.aggregate(target_topic_id, averages, baseline=baseline)
        logger.debug(
            f"Transfer estimate for {user_id}/{target_topic_id}: "
            f"baseline={estimate.baseline:.1f} boost={estimate.transfer_boost:.1f}"
        )
        return estimate

    def recommend_starting_level(self, user_id: str, target_topic_id: str, store: RecordStore) -> StartingLevel:
        return recommend_starting_level(self.estimate_topic(user_id, target_topic_id, store))


def average_topic_mastery(store: RecordStore, user_id: str) -> dict[str, float]:
    """Mean mastery across Bloom levels (and chapters) per topic."""
    scores: dict[str, list[float]] = defaultdict(list)
    for record in store.list_masteries(user_id):
        scores[record.key.topic_id].append(record.mastery_score)
    return {topic_id: sum(values) / len(values) for topic_id, values in scores.items()}


def recommend_starting_level(estimate: TransferEstimate) -> StartingLevel:
    """Starting Bloom level for a topic from its transfer estimate."""
    total = estimate.total
    if total >= 30:
        sources = ", ".join(estimate.sources[:2])
        return StartingLevel(2, f"Knowledge transfer from {sources} suggests {total:.0f}% understanding")
    if total >= 15:
        return StartingLevel(1, f"Partial transfer ({total:.0f}%) from related topics")
    return StartingLevel(1, "Cold start - no related knowledge")
