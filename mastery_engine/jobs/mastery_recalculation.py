"""
Mastery Recalculation Job.

Replays stored response histories to rebuild topic mastery records, for
example after a change to the reward decomposition. Each key is folded
independently from its chronologically sorted history while holding the
tracker's lock for that key, so a replay never interleaves with live
updates. A failing user or key is logged and skipped; the summary reports
what succeeded and what did not.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from config import Settings, get_settings
from mastery_engine.core.exceptions import MasteryEngineError
from mastery_engine.core.mastery import MasteryKey
from mastery_engine.db.store import RecordStore
from mastery_engine.jobs.guard import batch_scope
from mastery_engine.learning.mastery_tracker import MasteryTracker


@dataclass(frozen=True)
class RecalculationScope:
    """Optional filter; an empty scope covers every user."""

    user_id: str | None = None
    topic_id: str | None = None

    @property
    def label(self) -> str:
        if self.user_id is None and self.topic_id is None:
            return "mastery:all"
        return f"mastery:user={self.user_id or '*'},topic={self.topic_id or '*'}"


@dataclass
class RecalculationSummary:
    total_updated: int = 0
    users_processed: int = 0
    users_failed: int = 0
    keys_failed: int = 0
    preview: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.users_failed == 0 and self.keys_failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.succeeded,
            "total_updated": self.total_updated,
            "users_processed": self.users_processed,
            "users_failed": self.users_failed,
            "keys_failed": self.keys_failed,
            "preview": self.preview,
            "errors": self.errors,
        }


class MasteryRecalculationJob:
    """Rebuild mastery records from response history."""

    def __init__(
        self,
        store: RecordStore,
        tracker: MasteryTracker | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.tracker = tracker or MasteryTracker(store, self.settings)

    def run(self, scope: RecalculationScope | None = None) -> RecalculationSummary:
        """
        Replay every affected key.

        Raises:
            BatchInProgressError: If a run for the same scope is in flight
        """
        scope = scope or RecalculationScope()
        summary = RecalculationSummary()

        with batch_scope(scope.label):
            logger.info(f"Starting mastery recalculation ({scope.label})")

            user_ids = [scope.user_id] if scope.user_id else self.store.list_user_ids()
            for user_id in user_ids:
                try:
                    keys = self._keys_for_user(user_id, scope.topic_id)
                except (MasteryEngineError, ValueError) as e:
                    logger.error(f"Failed to load responses for user {user_id}: {e}")
                    summary.users_failed += 1
                    self._record_error(summary, user_id, None, e)
                    continue

                for key in keys:
                    try:
                        record = self.tracker.replay_key(key)
                    except (MasteryEngineError, ValueError) as e:
                        logger.warning(f"Failed to recalculate {key}: {e}")
                        summary.keys_failed += 1
                        self._record_error(summary, user_id, key, e)
                        continue

                    summary.total_updated += 1
                    if len(summary.preview) < self.settings.recalculation_preview_limit:
                        summary.preview.append(record.to_dict())

                summary.users_processed += 1

            logger.info(
                f"Mastery recalculation complete: {summary.total_updated} records, "
                f"{summary.users_processed} users, {summary.users_failed} users failed, "
                f"{summary.keys_failed} keys failed"
            )

        return summary

    def _keys_for_user(self, user_id: str, topic_id: str | None) -> list[MasteryKey]:
        responses = self.store.list_responses(user_id=user_id, topic_id=topic_id)
        keys = {MasteryKey.for_response(r) for r in responses}
        return sorted(keys, key=str)

    def _record_error(
        self,
        summary: RecalculationSummary,
        user_id: str,
        key: MasteryKey | None,
        error: Exception,
    ) -> None:
        if len(summary.errors) < self.settings.recalculation_error_limit:
            summary.errors.append(
                {"user_id": user_id, "key": str(key) if key else "", "error": str(error)}
            )
