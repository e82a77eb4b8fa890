"""
Mastery Tracker with per-key serialization.

Processes graded responses against a record store:
- Reward and calibration for the response
- Path-dependent mastery fold for its (user, topic, bloom, chapter) key
- Next review date for its (user, question)

The fold is non-commutative, so at most one mutator may work on a key at a
time. Each key gets its own lock; distinct keys proceed in parallel.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass

from loguru import logger

from config import Settings, get_settings
from mastery_engine.core.calibration import normalize_calibration, raw_calibration_for
from mastery_engine.core.exceptions import OrderingViolationError
from mastery_engine.core.mastery import MasteryKey, TopicMastery, fold_responses, update_mastery
from mastery_engine.core.models import Response
from mastery_engine.core.rewards import compute_reward
from mastery_engine.db.store import RecordStore
from mastery_engine.study.spaced_repetition import ReviewSchedule, record_review


@dataclass
class MasteryUpdate:
    """Result of processing one response."""

    key: MasteryKey
    old_mastery: float
    new_mastery: float
    reward: float
    raw_calibration: float | None
    normalized_calibration: float
    record: TopicMastery
    schedule: ReviewSchedule | None
    replayed: bool = False


class KeyLockRegistry:
    """
    Lazily created lock per key.

    Entries are weak: a lock lives only while some caller holds or waits on
    it, so keys that go idle drop out of the registry.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, key: object) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: object) -> Generator[None, None, None]:
        lock = self.get(key)
        with lock:
            yield


class MasteryTracker:
    """
    Apply responses to a record store.

    Ordering policy for a response older than the last folded one:
    - "replay": re-sort the key's full history and fold it again
    - "reject": raise OrderingViolationError and leave state untouched
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Settings | None = None,
        locks: KeyLockRegistry | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.locks = locks if locks is not None else KeyLockRegistry()

    @property
    def ordering_policy(self) -> str:
        return self.settings.mastery_ordering_policy

    @contextmanager
    def key_lock(self, key: MasteryKey) -> Generator[None, None, None]:
        """Hold the mutator slot for a key."""
        with self.locks.hold(key):
            yield

    def record_response(self, response: Response) -> MasteryUpdate:
        """
        Process a single graded response.

        Either every derived record is written or none is.

        Raises:
            OrderingViolationError: Out-of-order response under the reject policy
            RecordStoreError: The store write failed (prior state kept)
        """
        key = MasteryKey.for_response(response)
        alpha = self.settings.mastery_ema_alpha

        with self.key_lock(key):
            prior = self.store.get_mastery(key)
            old_score = prior.mastery_score if prior else 0.0
            replayed = False

            try:
                new_record = update_mastery(key, prior, response, ema_alpha=alpha)
            except OrderingViolationError:
                if self.ordering_policy == "reject":
                    logger.warning(f"Rejected out-of-order response {response.response_id} for {key}")
                    raise
                logger.info(f"Out-of-order response {response.response_id} for {key}; replaying history")
                history = self.store.get_response_history(
                    key.user_id, key.topic_id, key.bloom_level, key.chapter_id
                )
                new_record = fold_responses(key, [*history, response], ema_alpha=alpha)
                replayed = True

            raw = raw_calibration_for(response)
            schedule = self._next_schedule(response, raw)

            self.store.record_response(response, new_record, schedule)

        logger.debug(f"{key}: mastery {old_score:.2f} -> {new_record.mastery_score:.2f}")

        return MasteryUpdate(
            key=key,
            old_mastery=old_score,
            new_mastery=new_record.mastery_score,
            reward=compute_reward(response.is_correct, response.confidence, response.latency_seconds),
            raw_calibration=raw,
            normalized_calibration=normalize_calibration(raw),
            record=new_record,
            schedule=schedule,
            replayed=replayed,
        )

    def _next_schedule(self, response: Response, raw: float | None) -> ReviewSchedule | None:
        if response.question_id is None:
            return None

        existing = self.store.get_review_schedule(response.user_id, response.question_id)
        if existing is not None and response.timestamp < existing.last_reviewed_at:
            # A late-arriving older answer does not move the schedule
            return None

        return record_review(response.user_id, response.question_id, raw, response.timestamp)

    def replay_key(self, key: MasteryKey) -> TopicMastery:
        """Recompute one key from its stored history and save it."""
        with self.key_lock(key):
            history = self.store.get_response_history(key.user_id, key.topic_id, key.bloom_level, key.chapter_id)
            record = fold_responses(key, history, ema_alpha=self.settings.mastery_ema_alpha)
            self.store.save_masteries([record])
        return record
