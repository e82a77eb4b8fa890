"""
Topic Graph Query Capability.

The engine never traverses a graph store itself; it consumes query results
through the TopicGraphService protocol. Implementations:
- InMemoryTopicGraph: dictionaries, loadable from a JSON file
- Neo4jTopicGraph (graph.neo4j_service): Cypher queries against Neo4j

Any implementation may raise GraphUnavailableError; callers decide whether
to degrade.

Graph file format:
    {
      "topics": [
        {"id": "networking", "name": "Networking"},
        {"id": "tcp", "name": "TCP", "parent": "networking"}
      ],
      "prerequisites": {"tcp-handshake": ["tcp"]}
    }

A child topic depends on its parent; "prerequisites" adds explicit
dependencies on top of the hierarchy.
"""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from mastery_engine.core.exceptions import GraphUnavailableError


@dataclass(frozen=True)
class TopicRef:
    id: str
    name: str


@dataclass
class RelatedTopics:
    """Topics related to one topic, grouped by relationship."""

    siblings: list[TopicRef] = field(default_factory=list)
    cousins: list[TopicRef] = field(default_factory=list)
    parents: list[TopicRef] = field(default_factory=list)
    children: list[TopicRef] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.siblings or self.cousins or self.parents or self.children)


class TopicGraphService(Protocol):
    """Read-only graph queries consumed by transfer and keystone scoring."""

    def get_related_topics(self, topic_id: str) -> RelatedTopics: ...

    def get_dependent_count(self, topic_id: str) -> int: ...

    def get_child_count(self, topic_id: str) -> int: ...

    def list_topics(self) -> list[TopicRef]: ...


def compute_dependents(prerequisites: Mapping[str, Iterable[str]]) -> dict[str, set[str]]:
    """
    Transitive dependents of every topic.

    Args:
        prerequisites: topic -> topics it directly depends on

    Returns:
        topic -> every topic that depends on it directly or indirectly
    """
    dependents_of: dict[str, set[str]] = {}
    for topic, prereqs in prerequisites.items():
        for prereq in prereqs:
            dependents_of.setdefault(prereq, set()).add(topic)

    result: dict[str, set[str]] = {}
    for topic in set(dependents_of) | set(prerequisites):
        seen: set[str] = set()
        queue = deque(dependents_of.get(topic, ()))
        while queue:
            current = queue.popleft()
            if current in seen or current == topic:
                continue
            seen.add(current)
            queue.extend(dependents_of.get(current, ()))
        result[topic] = seen
    return result


def compute_dependent_counts(prerequisites: Mapping[str, Iterable[str]]) -> dict[str, int]:
    return {topic: len(deps) for topic, deps in compute_dependents(prerequisites).items()}


class InMemoryTopicGraph:
    """Topic hierarchy plus prerequisite edges held in memory."""

    def __init__(
        self,
        topics: Iterable[Mapping[str, Any]],
        prerequisites: Mapping[str, Iterable[str]] | None = None,
    ):
        self._names: dict[str, str] = {}
        self._parent: dict[str, str] = {}
        self._children: dict[str, list[str]] = {}

        for topic in topics:
            topic_id = topic["id"]
            self._names[topic_id] = topic.get("name", topic_id)
            parent = topic.get("parent")
            if parent:
                self._parent[topic_id] = parent
                self._children.setdefault(parent, []).append(topic_id)

        depends_on: dict[str, set[str]] = {}
        for child, parent in self._parent.items():
            depends_on.setdefault(child, set()).add(parent)
        for topic_id, prereqs in (prerequisites or {}).items():
            depends_on.setdefault(topic_id, set()).update(prereqs)

        self._dependent_counts = compute_dependent_counts(depends_on)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InMemoryTopicGraph:
        return cls(data.get("topics", []), data.get("prerequisites", {}))

    @classmethod
    def from_json_file(cls, path: Path | str) -> InMemoryTopicGraph:
        """
        Load a graph file.

        Raises:
            GraphUnavailableError: If the file is missing or not valid JSON
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise GraphUnavailableError(f"Cannot load topic graph from {path}: {e}") from e
        graph = cls.from_dict(data)
        logger.debug(f"Loaded topic graph with {len(graph._names)} topics from {path}")
        return graph

    def _ref(self, topic_id: str) -> TopicRef:
        return TopicRef(id=topic_id, name=self._names.get(topic_id, topic_id))

    def get_related_topics(self, topic_id: str) -> RelatedTopics:
        if topic_id not in self._names:
            return RelatedTopics()

        parent = self._parent.get(topic_id)
        siblings: list[str] = []
        cousins: list[str] = []

        if parent is not None:
            siblings = [t for t in self._children.get(parent, []) if t != topic_id]
            grandparent = self._parent.get(parent)
            if grandparent is not None:
                excluded = {topic_id, *siblings}
                for aunt in self._children.get(grandparent, []):
                    if aunt == parent:
                        continue
                    cousins.extend(t for t in self._children.get(aunt, []) if t not in excluded)

        return RelatedTopics(
            siblings=[self._ref(t) for t in siblings],
            cousins=[self._ref(t) for t in cousins],
            parents=[self._ref(parent)] if parent is not None else [],
            children=[self._ref(t) for t in self._children.get(topic_id, [])],
        )

    def get_dependent_count(self, topic_id: str) -> int:
        return self._dependent_counts.get(topic_id, 0)

    def get_child_count(self, topic_id: str) -> int:
        return len(self._children.get(topic_id, []))

    def list_topics(self) -> list[TopicRef]:
        return [self._ref(t) for t in self._names]
