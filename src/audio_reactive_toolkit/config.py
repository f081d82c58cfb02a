"""Toolkit settings plus YAML configuration loading and validation."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigValidationError(ValueError):
    """Raised when a config file does not validate."""


class ToolkitSettings(BaseSettings):
    """Process-wide defaults, overridable through ``ART_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="ART_", extra="ignore")

    log_level: str = "WARNING"
    frame_rate: float = Field(default=60.0, gt=0)
    sample_rate: int = Field(default=44100, gt=0)
    fft_size: int = Field(default=2048, ge=32)
    runs_root: Path = Path("runs")


class SignalSource(str, Enum):
    SILENCE = "silence"
    TONE = "tone"
    WAV = "wav"


class SimulationConfig(BaseModel):
    """Offline run of one network against synthetic or recorded frames."""

    model_config = ConfigDict(extra="forbid")

    network: Path
    frames: int | None = Field(default=None, gt=0)
    duration_s: float | None = Field(default=None, gt=0)
    frame_rate: float | None = Field(default=None, gt=0)
    sample_rate: int | None = Field(default=None, gt=0)
    fft_size: int | None = Field(default=None, ge=32)
    source: SignalSource = SignalSource.TONE
    tone_hz: float = Field(default=100.0, gt=0)
    amplitude: float = Field(default=0.8, ge=0, le=1)
    gate_on_s: float = Field(default=0.0, ge=0)
    gate_off_s: float | None = Field(default=None, ge=0)
    wav_path: Path | None = None
    record_nodes: bool = False

    @model_validator(mode="after")
    def _check_source(self) -> "SimulationConfig":
        if self.frames is None and self.duration_s is None:
            raise ValueError("one of frames or duration_s is required")
        if self.source == SignalSource.WAV and self.wav_path is None:
            raise ValueError("wav_path is required when source is 'wav'")
        if self.gate_off_s is not None and self.gate_off_s < self.gate_on_s:
            raise ValueError("gate_off_s must not be earlier than gate_on_s")
        return self

    def frame_count(self, frame_rate: float) -> int:
        if self.frames is not None:
            return self.frames
        return max(1, int(round(self.duration_s * frame_rate)))


def validate_config_dict(raw: object, model: type[BaseModel]) -> BaseModel:
    """Validate a pre-loaded config mapping against a pydantic model."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigValidationError("Config file root must be a mapping/object.")

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc


def load_and_validate_config(path: Path, model: type[BaseModel]) -> BaseModel:
    """Load YAML config and validate with the provided pydantic model."""
    with path.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"{path}: invalid YAML: {exc}") from exc
    config = validate_config_dict(raw, model)
    if isinstance(config, SimulationConfig):
        # Relative file references are resolved against the config's folder.
        base = path.parent
        if not config.network.is_absolute():
            config.network = base / config.network
        if config.wav_path is not None and not config.wav_path.is_absolute():
            config.wav_path = base / config.wav_path
    return config
