"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from mastery_engine.core.models import Response  # noqa: E402
from mastery_engine.db.store import InMemoryRecordStore  # noqa: E402
from mastery_engine.graph.service import InMemoryTopicGraph  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite record store and batch jobs)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings():
    """Default settings, independent of the environment's database."""
    return Settings(database_url="sqlite://")


@pytest.fixture
def make_response():
    """Factory for responses, spaced one minute apart by offset."""

    def _make(offset_minutes: float = 0, **overrides) -> Response:
        data = {
            "user_id": "u1",
            "topic_id": "tcp",
            "bloom_level": 1,
            "is_correct": True,
            "confidence": 3,
            "timestamp": BASE_TIME + timedelta(minutes=offset_minutes),
        }
        data.update(overrides)
        return Response(**data)

    return _make


@pytest.fixture
def memory_store():
    return InMemoryRecordStore()


@pytest.fixture
def graph_data():
    """
    Small networking hierarchy.

        networking
        ├── transport: tcp, udp, quic, sctp
        └── routing: ospf, bgp
    """
    return {
        "topics": [
            {"id": "networking", "name": "Networking"},
            {"id": "transport", "name": "Transport Layer", "parent": "networking"},
            {"id": "routing", "name": "Routing", "parent": "networking"},
            {"id": "tcp", "name": "TCP", "parent": "transport"},
            {"id": "udp", "name": "UDP", "parent": "transport"},
            {"id": "quic", "name": "QUIC", "parent": "transport"},
            {"id": "sctp", "name": "SCTP", "parent": "transport"},
            {"id": "ospf", "name": "OSPF", "parent": "routing"},
            {"id": "bgp", "name": "BGP", "parent": "routing"},
        ],
        "prerequisites": {"bgp": ["tcp"]},
    }


@pytest.fixture
def topic_graph(graph_data):
    return InMemoryTopicGraph.from_dict(graph_data)
