"""
Unit tests for topic graph implementations.
"""

import json

import pytest

from mastery_engine.adaptive.progression import ProgressionAction, ProgressionEvaluator, ProgressionRules, UserProgress
from mastery_engine.core.exceptions import GraphUnavailableError
from mastery_engine.graph import neo4j_service
from mastery_engine.graph.keystone import KeystoneScorer
from mastery_engine.graph.neo4j_service import Neo4jTopicGraph
from mastery_engine.graph.service import InMemoryTopicGraph, TopicRef


def ids(refs):
    return [ref.id for ref in refs]


class TestInMemoryTopicGraph:
    def test_siblings_cousins_parents(self, topic_graph):
        related = topic_graph.get_related_topics("tcp")

        assert ids(related.siblings) == ["udp", "quic", "sctp"]
        assert ids(related.cousins) == ["ospf", "bgp"]
        assert related.parents == [TopicRef("transport", "Transport Layer")]
        assert related.children == []

    def test_root_has_only_children(self, topic_graph):
        related = topic_graph.get_related_topics("networking")

        assert ids(related.children) == ["transport", "routing"]
        assert related.siblings == related.cousins == related.parents == []

    def test_unknown_topic(self, topic_graph):
        assert topic_graph.get_related_topics("nope").is_empty

    def test_missing_names_fall_back_to_id(self):
        graph = InMemoryTopicGraph([{"id": "a"}, {"id": "b", "parent": "a"}])
        assert graph.get_related_topics("b").parents == [TopicRef("a", "a")]

    def test_child_count(self, topic_graph):
        assert topic_graph.get_child_count("transport") == 4
        assert topic_graph.get_child_count("tcp") == 0

    def test_dependents_follow_mixed_paths(self):
        """A child of a topic that needs a prerequisite also depends on that prerequisite."""
        graph = InMemoryTopicGraph(
            [{"id": "a"}, {"id": "b"}, {"id": "c", "parent": "b"}],
            prerequisites={"b": ["a"]},
        )

        assert graph.get_dependent_count("a") == 2
        assert graph.get_dependent_count("b") == 1

    def test_from_json_file(self, tmp_path, graph_data):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps(graph_data), encoding="utf-8")

        graph = InMemoryTopicGraph.from_json_file(path)

        assert len(graph.list_topics()) == 9
        assert graph.get_dependent_count("networking") == 8

    def test_missing_file(self, tmp_path):
        with pytest.raises(GraphUnavailableError):
            InMemoryTopicGraph.from_json_file(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(GraphUnavailableError):
            InMemoryTopicGraph.from_json_file(path)


class FakeSession:
    def __init__(self, rows):
        self.rows = rows
        self.queries = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def run(self, query, **params):
        self.queries.append((query, params))
        return [FakeRecord(row) for row in self.rows]


class FakeRecord:
    def __init__(self, data):
        self._data = data

    def data(self):
        return self._data


class FakeDriver:
    def __init__(self, rows):
        self.session_obj = FakeSession(rows)

    def session(self, database=None):
        return self.session_obj

    def close(self):
        pass


class FailingDriver:
    """Driver whose sessions fail on every query."""

    def __init__(self, error):
        self.error = error

    def session(self, database=None):
        raise self.error

    def close(self):
        pass


@pytest.fixture
def offline_graph(monkeypatch, settings):
    monkeypatch.setattr(neo4j_service, "HAS_NEO4J", False)
    return Neo4jTopicGraph(settings)


def connected_graph(monkeypatch, offline_graph, rows):
    offline_graph._driver = FakeDriver(rows)
    offline_graph._connected = True
    monkeypatch.setattr(neo4j_service, "HAS_NEO4J", True)
    return offline_graph


class TestNeo4jTopicGraph:
    def test_unavailable_without_driver(self, offline_graph):
        assert not offline_graph.is_available
        with pytest.raises(GraphUnavailableError):
            offline_graph.get_related_topics("tcp")
        with pytest.raises(GraphUnavailableError):
            offline_graph.get_dependent_count("tcp")

    def test_related_topics_skip_null_matches(self, monkeypatch, offline_graph):
        row = {
            "siblings": [{"id": "udp", "name": "UDP"}],
            "cousins": [{"id": None, "name": None}],
            "parents": [{"id": "transport", "name": None}],
            "children": [],
        }
        graph = connected_graph(monkeypatch, offline_graph, [row])

        related = graph.get_related_topics("tcp")

        assert related.siblings == [TopicRef("udp", "UDP")]
        assert related.cousins == []
        assert related.parents == [TopicRef("transport", "transport")]

    def test_dependent_count(self, monkeypatch, offline_graph):
        graph = connected_graph(monkeypatch, offline_graph, [{"dependentCount": 7}])

        assert graph.get_dependent_count("networking") == 7
        _, params = graph._driver.session_obj.queries[0]
        assert params == {"topicId": "networking"}

    def test_empty_result(self, monkeypatch, offline_graph):
        graph = connected_graph(monkeypatch, offline_graph, [])
        assert graph.get_child_count("x") == 0
        assert graph.get_related_topics("x").is_empty

    def test_dependent_query_walks_both_edge_kinds(self):
        """Hierarchy and prerequisite edges are traversed in a single path."""
        query = neo4j_service.DEPENDENT_COUNT_QUERY

        assert query.count("OPTIONAL MATCH") == 1
        assert "HAS_TOPIC|HAS_SUBTOPIC|PREREQUISITE*1.." in query
        assert "WHEN 'PREREQUISITE' THEN endNode" in query
        assert "ELSE startNode" in query

    def test_driver_errors_become_unavailable(self, monkeypatch, offline_graph):
        exceptions = pytest.importorskip("neo4j.exceptions")
        graph = connected_graph(monkeypatch, offline_graph, [])
        graph._driver = FailingDriver(exceptions.SessionExpired("session expired"))

        with pytest.raises(GraphUnavailableError, match="session expired"):
            graph.get_dependent_count("tcp")

    def test_server_errors_become_unavailable(self, monkeypatch, offline_graph):
        exceptions = pytest.importorskip("neo4j.exceptions")
        graph = connected_graph(monkeypatch, offline_graph, [])
        graph._driver = FailingDriver(exceptions.ServiceUnavailable("gone"))

        with pytest.raises(GraphUnavailableError):
            graph.get_related_topics("tcp")

    def test_bad_connection_settings_leave_graph_unavailable(self, monkeypatch, settings):
        pytest.importorskip("neo4j")

        class RejectingGraphDatabase:
            @staticmethod
            def driver(uri, auth):
                raise ValueError(f"Unsupported URI scheme: {uri}")

        monkeypatch.setattr(neo4j_service, "GraphDatabase", RejectingGraphDatabase)

        graph = Neo4jTopicGraph(settings.model_copy(update={"neo4j_uri": "nope://host"}))

        assert not graph.is_available
        with pytest.raises(GraphUnavailableError):
            graph.list_topics()

    def test_expired_session_degrades_progression(self, monkeypatch, offline_graph):
        exceptions = pytest.importorskip("neo4j.exceptions")
        graph = connected_graph(monkeypatch, offline_graph, [])
        graph._driver = FailingDriver(exceptions.SessionExpired("session expired"))
        evaluator = ProgressionEvaluator(rules=ProgressionRules(), keystones=KeystoneScorer(graph))
        standing = UserProgress(
            user_id="u1", topic_id="tcp", current_bloom_level=3, total_attempts=8, mastery_scores={3: 85.0}
        )

        decision = evaluator.evaluate(standing)

        assert decision.degraded
        assert decision.keystone is None
        assert decision.action == ProgressionAction.ADVANCE
