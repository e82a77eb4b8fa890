"""
Neo4j-backed topic graph.

Topics are (:Topic {id, name}) nodes connected by HAS_TOPIC / HAS_SUBTOPIC
hierarchy edges and (:Topic)-[:PREREQUISITE]->(:Topic) dependency edges.
Every query failure surfaces as GraphUnavailableError so the progression
evaluator can degrade instead of failing.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

# Try to import Neo4j driver
try:
    from neo4j import Driver, GraphDatabase
    from neo4j.exceptions import AuthError, DriverError, Neo4jError, ServiceUnavailable
    HAS_NEO4J = True
except ImportError:
    HAS_NEO4J = False
    Driver = None

from config import Settings, get_settings
from mastery_engine.core.exceptions import GraphUnavailableError
from mastery_engine.graph.service import RelatedTopics, TopicRef

RELATED_TOPICS_QUERY = """
MATCH (t:Topic {id: $topicId})

OPTIONAL MATCH (t)<-[:HAS_TOPIC|HAS_SUBTOPIC]-(parent)-[:HAS_TOPIC|HAS_SUBTOPIC]->(sibling:Topic)
WHERE sibling.id <> $topicId

OPTIONAL MATCH (t)<-[:HAS_TOPIC|HAS_SUBTOPIC*2]-(grandparent)-[:HAS_TOPIC|HAS_SUBTOPIC*2]->(cousin:Topic)
WHERE cousin.id <> $topicId
  AND NOT (t)<-[:HAS_TOPIC|HAS_SUBTOPIC]-()-[:HAS_TOPIC|HAS_SUBTOPIC]->(cousin)

OPTIONAL MATCH (t)<-[:HAS_TOPIC|HAS_SUBTOPIC]-(parentTopic:Topic)
OPTIONAL MATCH (t)-[:HAS_TOPIC|HAS_SUBTOPIC]->(childTopic:Topic)

RETURN collect(DISTINCT {id: sibling.id, name: sibling.name}) AS siblings,
       collect(DISTINCT {id: cousin.id, name: cousin.name}) AS cousins,
       collect(DISTINCT {id: parentTopic.id, name: parentTopic.name}) AS parents,
       collect(DISTINCT {id: childTopic.id, name: childTopic.name}) AS children
"""

# One walk over both dependency kinds: a hierarchy step goes parent -> child,
# a prerequisite step goes from the prerequisite to the topic that needs it.
DEPENDENT_COUNT_QUERY = """
MATCH (t:Topic {id: $topicId})
OPTIONAL MATCH p = (t)-[:HAS_TOPIC|HAS_SUBTOPIC|PREREQUISITE*1..]-(dependent:Topic)
WHERE dependent <> t
  AND all(i IN range(0, length(p) - 1) WHERE
    CASE type(relationships(p)[i])
      WHEN 'PREREQUISITE' THEN endNode(relationships(p)[i]) = nodes(p)[i]
      ELSE startNode(relationships(p)[i]) = nodes(p)[i]
    END)
RETURN count(DISTINCT dependent) AS dependentCount
"""

CHILD_COUNT_QUERY = """
MATCH (t:Topic {id: $topicId})
OPTIONAL MATCH (t)-[:HAS_TOPIC|HAS_SUBTOPIC]->(child:Topic)
RETURN count(DISTINCT child) AS childCount
"""

LIST_TOPICS_QUERY = """
MATCH (t:Topic)
RETURN t.id AS id, t.name AS name
ORDER BY t.id
"""


def _refs(rows: list[dict[str, Any]]) -> list[TopicRef]:
    # OPTIONAL MATCH misses collect as {id: null}
    return [TopicRef(id=r["id"], name=r.get("name") or r["id"]) for r in rows if r.get("id")]


class Neo4jTopicGraph:
    """
    Topic graph queries against Neo4j.

    Usage:
        graph = Neo4jTopicGraph()
        if graph.is_available:
            related = graph.get_related_topics("tcp")
    """

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._driver: Driver | None = None
        self._connected = False

        if HAS_NEO4J:
            self._init_driver()
        else:
            logger.warning("Neo4j driver not installed. Install with: pip install neo4j")

    def _init_driver(self) -> None:
        """Initialize the Neo4j driver."""
        try:
            self._driver = GraphDatabase.driver(
                self._settings.neo4j_uri,
                auth=(self._settings.neo4j_user, self._settings.neo4j_password),
            )
            self._driver.verify_connectivity()
            self._connected = True
            logger.info(f"Connected to Neo4j at {self._settings.neo4j_uri}")
        except ServiceUnavailable as e:
            logger.warning(f"Neo4j not available: {e}")
        except AuthError as e:
            logger.error(f"Neo4j authentication failed: {e}")
        except Exception as e:
            logger.error(f"Neo4j connection error: {e}")

    @property
    def is_available(self) -> bool:
        """Check if Neo4j is available and connected."""
        return HAS_NEO4J and self._connected

    def close(self) -> None:
        """Close the Neo4j connection."""
        if self._driver:
            self._driver.close()
            self._connected = False

    def _run(self, query: str, **params: Any) -> list[dict[str, Any]]:
        if not self.is_available:
            raise GraphUnavailableError("Neo4j topic graph is not connected")
        try:
            with self._driver.session(database=self._settings.neo4j_database) as session:
                return [record.data() for record in session.run(query, **params)]
        except (DriverError, Neo4jError) as e:
            raise GraphUnavailableError(f"Neo4j query failed: {e}") from e

    def get_related_topics(self, topic_id: str) -> RelatedTopics:
        rows = self._run(RELATED_TOPICS_QUERY, topicId=topic_id)
        if not rows:
            return RelatedTopics()
        row = rows[0]
        return RelatedTopics(
            siblings=_refs(row["siblings"]),
            cousins=_refs(row["cousins"]),
            parents=_refs(row["parents"]),
            children=_refs(row["children"]),
        )

    def get_dependent_count(self, topic_id: str) -> int:
        rows = self._run(DEPENDENT_COUNT_QUERY, topicId=topic_id)
        return int(rows[0]["dependentCount"]) if rows else 0

    def get_child_count(self, topic_id: str) -> int:
        rows = self._run(CHILD_COUNT_QUERY, topicId=topic_id)
        return int(rows[0]["childCount"]) if rows else 0

    def list_topics(self) -> list[TopicRef]:
        return _refs(self._run(LIST_TOPICS_QUERY))
