"""
Analytics Module - calibration trend metrics.
"""

from mastery_engine.analytics.trend import (
    CalibrationMetrics,
    TrendAnalyzer,
    TrendDirection,
    calculate_metrics,
    classify_trend,
)

__all__ = [
    "CalibrationMetrics",
    "TrendAnalyzer",
    "TrendDirection",
    "calculate_metrics",
    "classify_trend",
]
