"""
Configuration settings for the bloom-mastery-engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///./mastery_engine.db",
        description="SQLAlchemy connection string for the record store",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Knowledge Graph (Neo4j)
    # ========================================
    neo4j_uri: str = Field(
        default="bolt://localhost:7687",
        description="Neo4j connection URI for topic graph queries",
    )
    neo4j_user: str = Field(
        default="neo4j",
        description="Neo4j username",
    )
    neo4j_password: str = Field(
        default="",
        description="Neo4j password",
    )
    neo4j_database: str = Field(
        default="neo4j",
        description="Neo4j database name",
    )

    # ========================================
    # Mastery Accumulation
    # ========================================
    mastery_ema_alpha: float = Field(
        default=0.3,
        description="EMA weight for responses without reward decomposition",
    )
    mastery_ordering_policy: Literal["reject", "replay"] = Field(
        default="replay",
        description="What to do with a response older than the last folded one",
    )

    # ========================================
    # Progression Rules
    # ========================================
    progression_min_attempts: int = Field(
        default=5,
        description="Minimum attempts at a Bloom level before advancing",
    )
    progression_advance_threshold: float = Field(
        default=80.0,
        description="Mastery required to advance to the next Bloom level",
    )
    progression_calibration_threshold: float = Field(
        default=0.3,
        description="Maximum mean calibration error allowed when advancing",
    )
    progression_review_threshold: float = Field(
        default=60.0,
        description="Below this mastery the learner reviews the current level",
    )
    progression_regression_threshold: float = Field(
        default=40.0,
        description="Below this mastery the learner drops one Bloom level",
    )
    trend_min_r_squared: float = Field(
        default=0.3,
        description="R² needed before a slope is trusted as a trend",
    )
    trend_min_points: int = Field(
        default=3,
        description="Minimum scores needed to classify a trend",
    )
    trend_slope_epsilon: float = Field(
        default=0.01,
        description="Slopes with smaller magnitude are treated as flat",
    )

    # ========================================
    # Knowledge Transfer & Keystones
    # ========================================
    transfer_source_threshold: float = Field(
        default=70.0,
        description="Minimum source mastery before knowledge transfers",
    )
    transfer_aggregate_cap: float = Field(
        default=40.0,
        description="Maximum total transfer boost for a single topic",
    )
    transfer_cousin_limit: int = Field(
        default=10,
        description="Number of cousins considered per source topic",
    )
    keystone_dependent_threshold: int = Field(
        default=5,
        description="Transitive dependents needed to flag a keystone topic",
    )

    # ========================================
    # IRT Calibration
    # ========================================
    irt_min_sample_size: int = Field(
        default=30,
        description="Responses required for empirical item calibration",
    )
    irt_min_unique_users: int = Field(
        default=10,
        description="Distinct users required for empirical item calibration",
    )

    # ========================================
    # Batch Jobs & Analytics
    # ========================================
    recalculation_preview_limit: int = Field(
        default=20,
        description="Updated mastery records returned in a recalculation summary",
    )
    recalculation_error_limit: int = Field(
        default=10,
        description="Errors returned in a recalculation summary",
    )
    calibration_history_limit: int = Field(
        default=50,
        description="Most recent responses used for calibration trend metrics",
    )

    # ========================================
    # Helper Methods
    # ========================================

    def get_progression_rules(self) -> dict[str, Any]:
        """Get progression thresholds as a dictionary."""
        return {
            "min_attempts_for_advancement": self.progression_min_attempts,
            "mastery_threshold_for_advancement": self.progression_advance_threshold,
            "calibration_error_threshold": self.progression_calibration_threshold,
            "auto_review_threshold": self.progression_review_threshold,
            "auto_regression_threshold": self.progression_regression_threshold,
            "trend_min_r_squared": self.trend_min_r_squared,
            "trend_min_points": self.trend_min_points,
            "trend_slope_epsilon": self.trend_slope_epsilon,
        }

    def get_irt_thresholds(self) -> dict[str, int]:
        """Get the empirical calibration preconditions."""
        return {
            "min_sample_size": self.irt_min_sample_size,
            "min_unique_users": self.irt_min_unique_users,
        }

    def get_neo4j_config(self) -> dict[str, str]:
        """Get Neo4j connection settings (password omitted)."""
        return {
            "uri": self.neo4j_uri,
            "user": self.neo4j_user,
            "database": self.neo4j_database,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
