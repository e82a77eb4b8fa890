"""
Record Store.

The engine only needs a handful of keyed reads and writes, expressed by the
RecordStore protocol. Two implementations:
- InMemoryRecordStore: dictionaries behind a lock (tests, CLI demos)
- SqlAlchemyRecordStore: the tables in db.models

Every write method is atomic: either all of its changes land or none do.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol

from loguru import logger
from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mastery_engine.core.exceptions import RecordStoreError
from mastery_engine.core.mastery import MasteryKey, TopicMastery
from mastery_engine.core.models import Response, RetrievalMethod, RewardDecomposition, sort_chronologically
from mastery_engine.db.database import session_scope
from mastery_engine.db.models import (
    QuestionIRTCalibrationRecord,
    ResponseRecord,
    ReviewScheduleRecord,
    TopicMasteryRecord,
)
from mastery_engine.irt.calibration import CalibrationMethod, QuestionIRTParameters
from mastery_engine.study.spaced_repetition import ReviewSchedule


class RecordStore(Protocol):
    """Persistence operations used by the tracker, jobs and evaluator."""

    def get_response_history(
        self,
        user_id: str,
        topic_id: str | None = None,
        bloom_level: int | None = None,
        chapter_id: str | None = None,
    ) -> list[Response]: ...

    def list_responses(self, user_id: str | None = None, topic_id: str | None = None) -> list[Response]: ...

    def list_user_ids(self) -> list[str]: ...

    def get_question_responses(self, question_id: str) -> list[Response]: ...

    def list_question_ids(self) -> list[str]: ...

    def get_mastery(self, key: MasteryKey) -> TopicMastery | None: ...

    def list_masteries(self, user_id: str) -> list[TopicMastery]: ...

    def save_masteries(self, records: Iterable[TopicMastery]) -> None: ...

    def record_response(
        self,
        response: Response,
        mastery: TopicMastery,
        schedule: ReviewSchedule | None = None,
    ) -> None: ...

    def get_review_schedule(self, user_id: str, question_id: str) -> ReviewSchedule | None: ...

    def save_irt_parameters(self, params: QuestionIRTParameters) -> None: ...

    def get_irt_parameters(self, question_id: str) -> QuestionIRTParameters | None: ...


# =============================================================================
# In-memory store
# =============================================================================


class InMemoryRecordStore:
    """Thread-safe dictionary-backed store."""

    def __init__(self, responses: Iterable[Response] | None = None):
        self._lock = threading.RLock()
        self._responses: dict[str, Response] = {}
        self._mastery: dict[MasteryKey, TopicMastery] = {}
        self._schedules: dict[tuple[str, str], ReviewSchedule] = {}
        self._irt: dict[str, QuestionIRTParameters] = {}
        for response in responses or []:
            self._responses[response.response_id] = response

    def add_responses(self, responses: Iterable[Response]) -> None:
        """Load responses without touching mastery (historical imports)."""
        with self._lock:
            for response in responses:
                self._responses[response.response_id] = response

    def get_response_history(
        self,
        user_id: str,
        topic_id: str | None = None,
        bloom_level: int | None = None,
        chapter_id: str | None = None,
    ) -> list[Response]:
        with self._lock:
            items = [
                r
                for r in self._responses.values()
                if r.user_id == user_id
                and (topic_id is None or r.topic_id == topic_id)
                and (bloom_level is None or r.bloom_level == bloom_level)
                and (chapter_id is None or r.chapter_id == chapter_id)
            ]
        return sort_chronologically(items)

    def list_responses(self, user_id: str | None = None, topic_id: str | None = None) -> list[Response]:
        with self._lock:
            items = [
                r
                for r in self._responses.values()
                if (user_id is None or r.user_id == user_id) and (topic_id is None or r.topic_id == topic_id)
            ]
        return sort_chronologically(items)

    def list_user_ids(self) -> list[str]:
        with self._lock:
            return sorted({r.user_id for r in self._responses.values()})

    def get_question_responses(self, question_id: str) -> list[Response]:
        with self._lock:
            return sort_chronologically([r for r in self._responses.values() if r.question_id == question_id])

    def list_question_ids(self) -> list[str]:
        with self._lock:
            return sorted({r.question_id for r in self._responses.values() if r.question_id is not None})

    def get_mastery(self, key: MasteryKey) -> TopicMastery | None:
        with self._lock:
            return self._mastery.get(key)

    def list_masteries(self, user_id: str) -> list[TopicMastery]:
        with self._lock:
            return [m for k, m in self._mastery.items() if k.user_id == user_id]

    def save_masteries(self, records: Iterable[TopicMastery]) -> None:
        staged = {record.key: record for record in records}
        with self._lock:
            self._mastery.update(staged)

    def record_response(
        self,
        response: Response,
        mastery: TopicMastery,
        schedule: ReviewSchedule | None = None,
    ) -> None:
        with self._lock:
            self._responses[response.response_id] = response
            self._mastery[mastery.key] = mastery
            if schedule is not None:
                self._schedules[(schedule.user_id, schedule.question_id)] = schedule

    def get_review_schedule(self, user_id: str, question_id: str) -> ReviewSchedule | None:
        with self._lock:
            return self._schedules.get((user_id, question_id))

    def save_irt_parameters(self, params: QuestionIRTParameters) -> None:
        if not params.is_empirical or params.question_id is None:
            raise RecordStoreError("Only empirical calibrations with a question id are persisted")
        with self._lock:
            self._irt[params.question_id] = params

    def get_irt_parameters(self, question_id: str) -> QuestionIRTParameters | None:
        with self._lock:
            return self._irt.get(question_id)


# =============================================================================
# SQLAlchemy store
# =============================================================================


def _utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_response(row: ResponseRecord) -> Response:
    reward = None
    if row.calibration_component is not None and row.recognition_component is not None:
        reward = RewardDecomposition(
            calibration_component=row.calibration_component,
            recognition_component=row.recognition_component,
        )
    return Response(
        response_id=row.response_id,
        user_id=row.user_id,
        topic_id=row.topic_id,
        question_id=row.question_id,
        chapter_id=row.chapter_id,
        bloom_level=row.bloom_level,
        is_correct=row.is_correct,
        confidence=row.confidence,
        latency_seconds=row.latency_seconds,
        retrieval_method=RetrievalMethod(row.retrieval_method) if row.retrieval_method else None,
        calibration_score=row.calibration_score,
        reward=reward,
        timestamp=_utc(row.answered_at),
    )


def _to_response_row(response: Response) -> ResponseRecord:
    return ResponseRecord(
        response_id=response.response_id,
        user_id=response.user_id,
        topic_id=response.topic_id,
        question_id=response.question_id,
        chapter_id=response.chapter_id,
        bloom_level=response.bloom_level,
        is_correct=response.is_correct,
        confidence=response.confidence,
        latency_seconds=response.latency_seconds,
        retrieval_method=response.retrieval_method.value if response.retrieval_method else None,
        calibration_score=response.calibration_score,
        calibration_component=response.reward.calibration_component if response.reward else None,
        recognition_component=response.reward.recognition_component if response.reward else None,
        answered_at=_utc(response.timestamp),
    )


def _to_mastery(row: TopicMasteryRecord) -> TopicMastery:
    return TopicMastery(
        key=MasteryKey(
            user_id=row.user_id,
            topic_id=row.topic_id,
            bloom_level=row.bloom_level,
            chapter_id=row.chapter_id or None,
        ),
        mastery_score=row.mastery_score,
        questions_attempted=row.questions_attempted,
        questions_correct=row.questions_correct,
        last_practiced_at=_utc(row.last_practiced_at),
    )


def _to_schedule(row: ReviewScheduleRecord) -> ReviewSchedule:
    return ReviewSchedule(
        user_id=row.user_id,
        question_id=row.question_id,
        last_reviewed_at=_utc(row.last_reviewed_at),
        next_review_date=_utc(row.next_review_date),
        normalized_calibration=row.normalized_calibration,
        interval_hours=row.interval_hours,
        table_version=row.table_version,
    )


class SqlAlchemyRecordStore:
    """
    Relational record store.

    Args:
        engine: Bind to a specific engine. Defaults to the configured
            application engine (db.database).
    """

    def __init__(self, engine: Engine | None = None):
        self._session_factory: Callable[[], Session] | None = (
            sessionmaker(bind=engine, autocommit=False, autoflush=False) if engine is not None else None
        )

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        if self._session_factory is None:
            scope = session_scope()
        else:
            scope = self._own_scope()
        try:
            with scope as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Record store operation failed: {e}")
            raise RecordStoreError(str(e)) from e

    @contextmanager
    def _own_scope(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    # -- responses -----------------------------------------------------------

    def get_response_history(
        self,
        user_id: str,
        topic_id: str | None = None,
        bloom_level: int | None = None,
        chapter_id: str | None = None,
    ) -> list[Response]:
        stmt = select(ResponseRecord).where(ResponseRecord.user_id == user_id)
        if topic_id is not None:
            stmt = stmt.where(ResponseRecord.topic_id == topic_id)
        if bloom_level is not None:
            stmt = stmt.where(ResponseRecord.bloom_level == bloom_level)
        if chapter_id is not None:
            stmt = stmt.where(ResponseRecord.chapter_id == chapter_id)
        stmt = stmt.order_by(ResponseRecord.answered_at, ResponseRecord.id)
        with self._session() as session:
            return [_to_response(row) for row in session.scalars(stmt)]

    def list_responses(self, user_id: str | None = None, topic_id: str | None = None) -> list[Response]:
        stmt = select(ResponseRecord)
        if user_id is not None:
            stmt = stmt.where(ResponseRecord.user_id == user_id)
        if topic_id is not None:
            stmt = stmt.where(ResponseRecord.topic_id == topic_id)
        stmt = stmt.order_by(ResponseRecord.answered_at, ResponseRecord.id)
        with self._session() as session:
            return [_to_response(row) for row in session.scalars(stmt)]

    def list_user_ids(self) -> list[str]:
        stmt = select(ResponseRecord.user_id).distinct().order_by(ResponseRecord.user_id)
        with self._session() as session:
            return list(session.scalars(stmt))

    def add_responses(self, responses: Iterable[Response]) -> None:
        """Load responses without touching mastery (historical imports)."""
        with self._session() as session:
            session.add_all(_to_response_row(r) for r in responses)

    def get_question_responses(self, question_id: str) -> list[Response]:
        stmt = (
            select(ResponseRecord)
            .where(ResponseRecord.question_id == question_id)
            .order_by(ResponseRecord.answered_at, ResponseRecord.id)
        )
        with self._session() as session:
            return [_to_response(row) for row in session.scalars(stmt)]

    def list_question_ids(self) -> list[str]:
        stmt = (
            select(ResponseRecord.question_id)
            .where(ResponseRecord.question_id.is_not(None))
            .distinct()
            .order_by(ResponseRecord.question_id)
        )
        with self._session() as session:
            return list(session.scalars(stmt))

    # -- mastery ---------------------------------------------------------------

    @staticmethod
    def _mastery_row(session: Session, key: MasteryKey) -> TopicMasteryRecord | None:
        stmt = select(TopicMasteryRecord).where(
            TopicMasteryRecord.user_id == key.user_id,
            TopicMasteryRecord.topic_id == key.topic_id,
            TopicMasteryRecord.bloom_level == key.bloom_level,
            TopicMasteryRecord.chapter_id == (key.chapter_id or ""),
        )
        return session.scalars(stmt).first()

    def _upsert_mastery(self, session: Session, record: TopicMastery) -> None:
        row = self._mastery_row(session, record.key)
        if row is None:
            row = TopicMasteryRecord(
                user_id=record.key.user_id,
                topic_id=record.key.topic_id,
                bloom_level=record.key.bloom_level,
                chapter_id=record.key.chapter_id or "",
            )
            session.add(row)
        row.mastery_score = record.mastery_score
        row.questions_attempted = record.questions_attempted
        row.questions_correct = record.questions_correct
        row.last_practiced_at = _utc(record.last_practiced_at)

    def get_mastery(self, key: MasteryKey) -> TopicMastery | None:
        with self._session() as session:
            row = self._mastery_row(session, key)
            return _to_mastery(row) if row is not None else None

    def list_masteries(self, user_id: str) -> list[TopicMastery]:
        stmt = (
            select(TopicMasteryRecord)
            .where(TopicMasteryRecord.user_id == user_id)
            .order_by(TopicMasteryRecord.topic_id, TopicMasteryRecord.bloom_level)
        )
        with self._session() as session:
            return [_to_mastery(row) for row in session.scalars(stmt)]

    def save_masteries(self, records: Iterable[TopicMastery]) -> None:
        with self._session() as session:
            for record in records:
                self._upsert_mastery(session, record)

    def record_response(
        self,
        response: Response,
        mastery: TopicMastery,
        schedule: ReviewSchedule | None = None,
    ) -> None:
        with self._session() as session:
            session.add(_to_response_row(response))
            self._upsert_mastery(session, mastery)
            if schedule is not None:
                self._upsert_schedule(session, schedule)

    # -- review schedules ------------------------------------------------------

    @staticmethod
    def _upsert_schedule(session: Session, schedule: ReviewSchedule) -> None:
        stmt = select(ReviewScheduleRecord).where(
            ReviewScheduleRecord.user_id == schedule.user_id,
            ReviewScheduleRecord.question_id == schedule.question_id,
        )
        row = session.scalars(stmt).first()
        if row is None:
            row = ReviewScheduleRecord(user_id=schedule.user_id, question_id=schedule.question_id)
            session.add(row)
        row.last_reviewed_at = _utc(schedule.last_reviewed_at)
        row.next_review_date = _utc(schedule.next_review_date)
        row.normalized_calibration = schedule.normalized_calibration
        row.interval_hours = schedule.interval_hours
        row.table_version = schedule.table_version

    def get_review_schedule(self, user_id: str, question_id: str) -> ReviewSchedule | None:
        stmt = select(ReviewScheduleRecord).where(
            ReviewScheduleRecord.user_id == user_id,
            ReviewScheduleRecord.question_id == question_id,
        )
        with self._session() as session:
            row = session.scalars(stmt).first()
            return _to_schedule(row) if row is not None else None

    # -- IRT -------------------------------------------------------------------

    def save_irt_parameters(self, params: QuestionIRTParameters) -> None:
        if not params.is_empirical or params.question_id is None:
            raise RecordStoreError("Only empirical calibrations with a question id are persisted")
        stmt = select(QuestionIRTCalibrationRecord).where(
            QuestionIRTCalibrationRecord.question_id == params.question_id
        )
        with self._session() as session:
            row = session.scalars(stmt).first()
            if row is None:
                row = QuestionIRTCalibrationRecord(question_id=params.question_id)
                session.add(row)
            row.discrimination = params.discrimination
            row.difficulty = params.difficulty
            row.guessing = params.guessing
            row.p_value = params.p_value
            row.sample_size = params.sample_size
            row.unique_user_count = params.unique_user_count
            row.calibration_method = params.calibration_method.value

    def get_irt_parameters(self, question_id: str) -> QuestionIRTParameters | None:
        stmt = select(QuestionIRTCalibrationRecord).where(QuestionIRTCalibrationRecord.question_id == question_id)
        with self._session() as session:
            row = session.scalars(stmt).first()
            if row is None:
                return None
            return QuestionIRTParameters(
                question_id=row.question_id,
                sample_size=row.sample_size,
                unique_user_count=row.unique_user_count,
                calibration_method=CalibrationMethod(row.calibration_method),
                discrimination=row.discrimination,
                difficulty=row.difficulty,
                guessing=row.guessing,
                p_value=row.p_value,
            )
