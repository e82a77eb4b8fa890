"""
Batch IRT Calibration Job.

Recalibrates item parameters from all accumulated responses. Only empirical
results are persisted; questions with insufficient data are counted and
keep whatever the caller falls back to (Bloom defaults).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from config import Settings, get_settings
from mastery_engine.core.exceptions import RecordStoreError
from mastery_engine.db.store import RecordStore
from mastery_engine.irt.calibration import QuestionIRTParameters, calibrate_question
from mastery_engine.jobs.guard import batch_scope

IRT_SCOPE = "irt:calibration"


@dataclass
class IRTCalibrationSummary:
    questions_seen: int = 0
    calibrated: int = 0
    skipped: int = 0
    persisted: int = 0
    failed: int = 0
    results: list[QuestionIRTParameters] = field(default_factory=list)


class IRTCalibrationJob:
    def __init__(self, store: RecordStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    def run(self, question_ids: list[str] | None = None) -> IRTCalibrationSummary:
        """
        Calibrate the given questions, or every question with responses.

        Raises:
            BatchInProgressError: If a calibration run is already in flight
        """
        summary = IRTCalibrationSummary()
        thresholds = self.settings.get_irt_thresholds()

        with batch_scope(IRT_SCOPE):
            ids = question_ids if question_ids is not None else self.store.list_question_ids()
            logger.info(f"Starting IRT calibration for {len(ids)} questions")

            for question_id in ids:
                summary.questions_seen += 1
                params = calibrate_question(
                    self.store.get_question_responses(question_id),
                    question_id=question_id,
                    min_sample_size=thresholds["min_sample_size"],
                    min_unique_users=thresholds["min_unique_users"],
                )
                summary.results.append(params)

                if not params.is_empirical:
                    summary.skipped += 1
                    continue

                summary.calibrated += 1
                try:
                    self.store.save_irt_parameters(params)
                except RecordStoreError as e:
                    logger.error(f"Failed to persist IRT parameters for {question_id}: {e}")
                    summary.failed += 1
                    continue
                summary.persisted += 1

            logger.info(
                f"IRT calibration complete: {summary.calibrated} calibrated, "
                f"{summary.skipped} skipped (insufficient data), {summary.failed} failed"
            )

        return summary
