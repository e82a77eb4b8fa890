from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager

from mastery_engine.core.exceptions import BatchInProgressError

_lock = threading.Lock()
_in_flight: set[str] = set()


@contextmanager
def batch_scope(scope: str) -> Generator[None, None, None]:
    """
    Claim a batch scope for the duration of a run.

    Raises:
        BatchInProgressError: If another run already holds the scope
    """
    with _lock:
        if scope in _in_flight:
            raise BatchInProgressError(scope)
        _in_flight.add(scope)
    try:
        yield
    finally:
        with _lock:
            _in_flight.discard(scope)


def is_in_flight(scope: str) -> bool:
    with _lock:
        return scope in _in_flight
