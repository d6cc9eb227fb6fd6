"""Settings for capture, analysis, metering and display.

Values come from a YAML file validated by pydantic; every field has a default
so an absent file is a valid configuration.
"""

import logging
from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from stereovu.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("settings.yml")


class AudioConfig(BaseModel):
    """Audio capture configuration."""

    sample_rate: int = Field(default=48000, ge=8000, le=192000)
    device_id: int | None = Field(default=None)
    block_size: int = Field(default=512, ge=32, le=16384)
    require_gesture: bool = Field(default=False)


class AnalyserConfig(BaseModel):
    """Per-channel analyser configuration."""

    fft_size: int = Field(default=1024, ge=32, le=32768)
    smoothing_time_constant: float = Field(default=0.85, ge=0.0, le=1.0)

    @field_validator("fft_size")
    @classmethod
    def validate_power_of_two(cls, value: int) -> int:
        if value & (value - 1):
            raise ValueError("fft_size must be a power of two")
        return value


class MeterConfig(BaseModel):
    """Level computation and needle ballistics."""

    gain: float = Field(default=0.35, gt=0.0)
    noise_floor_db: float = Field(default=-75.0, le=0.0)
    clip_db: float = Field(default=0.0, le=24.0)
    shape: float = Field(default=2.5, gt=0.0)
    cal_scale: float = Field(default=1.25, gt=0.0)
    cal_offset: float = Field(default=-0.08, ge=-1.0, le=1.0)
    attack: float = Field(default=0.65, gt=0.0, le=1.0)
    release: float = Field(default=0.05, gt=0.0, le=1.0)
    epsilon: float = Field(default=1e-7, gt=0.0)
    mono_threshold: float = Field(default=1e-6, ge=0.0)

    @model_validator(mode="after")
    def validate_db_range(self) -> Self:
        if self.noise_floor_db >= self.clip_db:
            raise ValueError("noise_floor_db must be below clip_db")
        return self


class PeakConfig(BaseModel):
    """Peak LED configuration."""

    threshold: float = Field(default=0.56, gt=0.0, le=1.0)
    hold_ms: float = Field(default=600.0, gt=0.0)


class NeedleConfig(BaseModel):
    """Needle sweep configuration (degrees)."""

    min_angle: float = Field(default=-150.0)
    max_angle: float = Field(default=65.0)
    bias: float = Field(default=0.0, ge=-1.0, le=1.0)


class DisplayConfig(BaseModel):
    """Terminal monitor configuration."""

    fps: float = Field(default=60.0, ge=1.0, le=240.0)
    meter_width: int = Field(default=30, ge=10, le=200)


class Settings(BaseModel):
    """Application settings loaded from settings.yml."""

    audio: AudioConfig = Field(default_factory=AudioConfig)
    analyser: AnalyserConfig = Field(default_factory=AnalyserConfig)
    meter: MeterConfig = Field(default_factory=MeterConfig)
    peak: PeakConfig = Field(default_factory=PeakConfig)
    needle: NeedleConfig = Field(default_factory=NeedleConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Self:
        """Read settings from a YAML file.

        A missing or empty file gives the defaults; sections and fields left
        out of the file keep theirs.

        Raises:
            ConfigError: If the file is not YAML or a value fails validation
        """
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.is_file():
            logger.debug(f"No config file at {path}, using defaults")
            return cls()

        try:
            data = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e

        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {path}: {e}") from e


_cached: Settings | None = None


def get_settings(config_path: Path | None = None) -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _cached
    if _cached is None:
        _cached = Settings.load(config_path)
    return _cached


def reset_settings() -> None:
    """Forget the cached settings so the next call reloads them."""
    global _cached
    _cached = None
