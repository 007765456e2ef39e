"""
Engine configuration model and TOML loader
"""
import logging
import os
from datetime import date
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

try:
    import tomllib
except ImportError:
    import tomli as tomllib

from utils.constants import (
    CONFIG_PATH,
    DEFAULT_EXCELLENT_THRESHOLD,
    DEFAULT_GOOD_THRESHOLD,
    DEFAULT_HOURS_BY_VALUE,
    DEFAULT_MAX_SYNTHETIC_SPRINTS,
    DEFAULT_SPRINT_LENGTH_WEEKS,
    DEFAULT_SYNTHETIC_ANCHOR,
    DEFAULT_WARNING_THRESHOLD,
    DEFAULT_WEEK_START_DAY,
    DEFAULT_WEEKEND_DAYS,
    DEFAULT_WORKING_DAYS_PER_WEEK,
    VALID_VALUES,
)
from utils.date_utils import parse_date_flexible, weekday_from_name
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


class StatusThresholds(BaseModel):
    """
    Lower bounds (inclusive) of the completion status bands.
    Anything below `warning` is critical.
    """
    model_config = ConfigDict(frozen=True)

    excellent: int = Field(default=DEFAULT_EXCELLENT_THRESHOLD, ge=0, le=100)
    good: int = Field(default=DEFAULT_GOOD_THRESHOLD, ge=0, le=100)
    warning: int = Field(default=DEFAULT_WARNING_THRESHOLD, ge=0, le=100)

    @model_validator(mode='after')
    def validate_order(self):
        """Bands must be strictly descending"""
        if not (self.excellent > self.good > self.warning):
            raise ValueError(
                "Thresholds must satisfy excellent > good > warning "
                f"(received {self.excellent}/{self.good}/{self.warning})"
            )
        return self


class EngineConfig(BaseModel):
    """
    Construction-time settings of the scheduling engine.
    Frozen: nothing here changes while the engine runs.
    """
    model_config = ConfigDict(frozen=True)

    weekend_days: FrozenSet[int] = Field(default=frozenset(DEFAULT_WEEKEND_DAYS))
    week_start_day: int = Field(default=DEFAULT_WEEK_START_DAY)
    synthetic_anchor_date: date = Field(default=DEFAULT_SYNTHETIC_ANCHOR, description="Start of synthetic sprint 1")
    sprint_length_weeks: int = Field(default=DEFAULT_SPRINT_LENGTH_WEEKS, ge=1)
    working_days_per_week: int = Field(default=DEFAULT_WORKING_DAYS_PER_WEEK, ge=1, le=7)
    hours_by_value: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_HOURS_BY_VALUE))
    status_thresholds: StatusThresholds = Field(default_factory=StatusThresholds)
    max_synthetic_sprints: int = Field(default=DEFAULT_MAX_SYNTHETIC_SPRINTS, ge=1)

    @field_validator('weekend_days', mode='before')
    @classmethod
    def parse_weekend_days(cls, v):
        """Accept weekday ints or names"""
        days = frozenset(weekday_from_name(day) for day in v)
        if len(days) >= 7:
            raise ValueError("Week-end cannot cover every day of the week")
        return days

    @field_validator('week_start_day', mode='before')
    @classmethod
    def parse_week_start(cls, v):
        return weekday_from_name(v)

    @field_validator('synthetic_anchor_date', mode='before')
    @classmethod
    def parse_anchor(cls, v):
        if isinstance(v, str):
            return parse_date_flexible(v)
        return v

    @field_validator('hours_by_value')
    @classmethod
    def validate_hours(cls, v):
        missing = [value for value in VALID_VALUES if value not in v]
        if missing:
            raise ValueError(f"Hour mapping missing status codes: {', '.join(missing)}")
        negative = [value for value, hours in v.items() if hours < 0]
        if negative:
            raise ValueError(f"Hour mapping has negative hours for: {', '.join(negative)}")
        return v

    @property
    def working_days_per_sprint(self) -> int:
        return self.sprint_length_weeks * self.working_days_per_week

    @classmethod
    def build(cls, **settings) -> 'EngineConfig':
        """
        Construct a config, turning validation failures into ConfigurationError
        """
        try:
            return cls(**settings)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid engine configuration: {exc}") from exc


def _settings_from_toml(data: dict) -> dict:
    """Map TOML sections onto EngineConfig fields"""
    schedule = data.get('sprint_schedule', {})
    settings = {}

    field_map = {
        'weekend_days': 'weekend_days',
        'week_start_day': 'week_start_day',
        'anchor_date': 'synthetic_anchor_date',
        'length_weeks': 'sprint_length_weeks',
        'working_days_per_week': 'working_days_per_week',
        'max_synthetic_sprints': 'max_synthetic_sprints',
    }
    for key, field_name in field_map.items():
        if key in schedule:
            settings[field_name] = schedule[key]

    if 'hours' in data:
        settings['hours_by_value'] = {str(k): v for k, v in data['hours'].items()}

    if 'completion_thresholds' in data:
        settings['status_thresholds'] = data['completion_thresholds']

    return settings


def load_engine_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration from a TOML file

    A missing file falls back to defaults; a malformed one is fatal.

    Args:
        config_path: Path to TOML config (optional)

    Raises:
        ConfigurationError: If the file cannot be parsed or holds invalid values
    """
    path = config_path or CONFIG_PATH
    if not os.path.exists(path):
        logger.info(f"No engine config at {path}, using defaults")
        return EngineConfig()

    try:
        with open(path, 'rb') as f:
            data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigurationError(f"Cannot read engine config {path}: {exc}") from exc

    try:
        settings = _settings_from_toml(data)
    except (AttributeError, TypeError) as exc:
        raise ConfigurationError(f"Malformed engine config {path}: {exc}") from exc

    return EngineConfig.build(**settings)
