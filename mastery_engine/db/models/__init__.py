# SQLAlchemy models
from .base import Base
from .mastery import (
    QuestionIRTCalibrationRecord,
    ResponseRecord,
    ReviewScheduleRecord,
    TopicMasteryRecord,
)

__all__ = [
    "Base",
    "QuestionIRTCalibrationRecord",
    "ResponseRecord",
    "ReviewScheduleRecord",
    "TopicMasteryRecord",
]
