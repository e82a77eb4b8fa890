"""
Error taxonomy for the mastery engine.

Only genuine failures are exceptions. Insufficient IRT data, missing reward
components and a missing mastery record are ordinary outcomes and are
represented in return values instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class MasteryEngineError(Exception):
    """Base class for all mastery engine errors."""


class InvalidResponseError(MasteryEngineError, ValueError):
    """Raised when a graded response fails validation at the boundary."""


class OrderingViolationError(MasteryEngineError):
    """Raised when a response is older than the last response folded into its key."""

    def __init__(self, key: Any, last_folded_at: datetime, received_at: datetime):
        self.key = key
        self.last_folded_at = last_folded_at
        self.received_at = received_at
        super().__init__(
            f"Response at {received_at.isoformat()} predates last folded response "
            f"at {last_folded_at.isoformat()} for {key}"
        )


class GraphUnavailableError(MasteryEngineError):
    """Raised when the topic graph cannot be queried."""


class RecordStoreError(MasteryEngineError):
    """Raised when the record store fails to read or write."""


class BatchInProgressError(MasteryEngineError):
    """Raised when a batch job is started while another run holds the same scope."""

    def __init__(self, scope: str):
        self.scope = scope
        super().__init__(f"A batch run is already in flight for scope '{scope}'")
