"""
Graph Module - topic graph queries, knowledge transfer and keystone scoring.
"""

from mastery_engine.graph.keystone import KeystoneScore, KeystoneScorer, TopicPriority
from mastery_engine.graph.knowledge_transfer import (
    InferredTransfer,
    KnowledgeTransferInferencer,
    RelationshipKind,
    TransferEstimate,
    recommend_starting_level,
)
from mastery_engine.graph.service import (
    InMemoryTopicGraph,
    RelatedTopics,
    TopicGraphService,
    TopicRef,
    compute_dependent_counts,
)

__all__ = [
    "InMemoryTopicGraph",
    "InferredTransfer",
    "KeystoneScore",
    "KeystoneScorer",
    "KnowledgeTransferInferencer",
    "RelatedTopics",
    "RelationshipKind",
    "TopicGraphService",
    "TopicPriority",
    "TopicRef",
    "TransferEstimate",
    "compute_dependent_counts",
    "recommend_starting_level",
]
