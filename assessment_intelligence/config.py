"""
Runtime settings for the analysis engines.

Values come from environment variables named after the fields
(``OUTLIER_METHOD``, ``BATCH_CHUNK_SIZE``...). ``main.py`` and ``api.py``
load a ``.env`` file first via python-dotenv. Every default equals the
documented default of the corresponding analysis option, so an empty
environment reproduces the stock behaviour.
"""

from __future__ import annotations

import logging
from typing import Literal, get_args

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OutlierMethod = Literal["statistical", "comparative", "hybrid"]
OutlierGrouping = Literal["neighborhood", "propertyType", "both"]
LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

OUTLIER_METHODS: tuple[str, ...] = get_args(OutlierMethod)
OUTLIER_GROUPINGS: tuple[str, ...] = get_args(OutlierGrouping)
AREA_TYPES: tuple[str, ...] = ("neighborhood", "zipCode", "city", "county")
TREND_PERIODS: tuple[str, ...] = ("month", "quarter", "year")


class AnalysisSettings(BaseSettings):
    """Tunable defaults for outlier, trend, comparable and batch operations."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    outlier_threshold: float = Field(default=15.0, ge=0)
    outlier_method: OutlierMethod = "hybrid"
    outlier_group_by: OutlierGrouping = "both"
    trend_significance_threshold: float = Field(default=5.0, ge=0)
    comparable_count: int = Field(default=5, ge=1)
    comparable_max_distance_miles: float = Field(default=1.0, gt=0)
    batch_chunk_size: int = Field(default=100, ge=1)
    log_level: LogLevel = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_env(cls) -> AnalysisSettings:
        """Load settings from the environment, raising ConfigurationError on bad values."""
        try:
            settings = cls()
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid analysis settings in environment: {e.error_count()} error(s)",
                {
                    "errors": [
                        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                        for err in e.errors()
                    ]
                },
            ) from e

        overridden = sorted(settings.model_fields_set)
        if overridden:
            logger.info("Loaded analysis settings overrides: %s", overridden)
        return settings
