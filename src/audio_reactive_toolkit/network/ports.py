"""Port value kinds, frame payloads, and connection/coercion rules."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np


class PortType(str, Enum):
    """Supported port payload types."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    COLOR = "color"
    BYTE_BUFFER = "Uint8Array"
    FREQUENCY_ANALYSIS = "FrequencyAnalysis"
    OBJECT = "object"
    VECTOR3 = "vector3"
    MATH_OP = "math-op"


class MathOperation(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    POWER = "power"
    MAX = "max"
    MIN = "min"
    MODULO = "modulo"


# Identity is always allowed; these are the extra source -> target pairs.
_EXTRA_CONNECTIONS: dict[PortType, frozenset[PortType]] = {
    PortType.NUMBER: frozenset({PortType.STRING}),
    PortType.BOOLEAN: frozenset({PortType.NUMBER}),
    PortType.STRING: frozenset({PortType.COLOR}),
    PortType.COLOR: frozenset({PortType.STRING}),
}

_TRUE_STRINGS = {"true", "1", "yes", "on"}


def as_byte_array(value: Any) -> np.ndarray:
    """Normalize bytes, sequences, or arrays to a flat ``uint8`` array."""

    if value is None:
        return np.zeros(0, dtype=np.uint8)
    if isinstance(value, np.ndarray):
        if value.dtype == np.uint8:
            return value.reshape(-1)
        return np.clip(np.nan_to_num(value.astype(np.float64)), 0, 255).astype(np.uint8).reshape(-1)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return np.frombuffer(bytes(value), dtype=np.uint8)
    try:
        arr = np.asarray(list(value), dtype=np.float64)
    except (TypeError, ValueError):
        return np.zeros(0, dtype=np.uint8)
    return np.clip(np.nan_to_num(arr), 0, 255).astype(np.uint8).reshape(-1)


@dataclass
class FrequencyAnalysis:
    """Byte spectrum plus the analyser settings needed to map bins to Hz."""

    spectrum: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    sample_rate: int = 0
    fft_size: int = 0

    def __post_init__(self) -> None:
        self.spectrum = as_byte_array(self.spectrum)
        self.sample_rate = int(to_number(self.sample_rate))
        self.fft_size = int(to_number(self.fft_size))

    @property
    def is_empty(self) -> bool:
        return self.spectrum.size == 0 or not self.sample_rate or not self.fft_size

    @classmethod
    def coerce(cls, value: Any) -> FrequencyAnalysis:
        """Accept an instance or a mapping using either naming convention."""

        if isinstance(value, FrequencyAnalysis):
            return value
        if isinstance(value, dict):
            spectrum = value.get("spectrum", value.get("frequencyData"))
            return cls(
                spectrum=as_byte_array(spectrum),
                sample_rate=value.get("sample_rate", value.get("sampleRate", 0)),
                fft_size=value.get("fft_size", value.get("fftSize", 0)),
            )
        return cls()


@dataclass
class FrameContext:
    """Per-frame global input: waveform bytes, spectrum, elapsed seconds."""

    audio_signal: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.uint8))
    frequency_analysis: FrequencyAnalysis = field(default_factory=FrequencyAnalysis)
    time: float = 0.0

    def __post_init__(self) -> None:
        self.audio_signal = as_byte_array(self.audio_signal)
        self.frequency_analysis = FrequencyAnalysis.coerce(self.frequency_analysis)
        self.time = to_number(self.time)

    def as_outputs(self) -> dict[str, Any]:
        """Frame as the Input node's output record."""

        return {
            "audioSignal": self.audio_signal,
            "frequencyAnalysis": self.frequency_analysis,
            "time": self.time,
        }


def types_compatible(source: PortType, target: PortType) -> bool:
    """Whether an output of ``source`` type may feed an input of ``target`` type."""

    if source == target:
        return True
    return target in _EXTRA_CONNECTIONS.get(source, frozenset())


def default_for_type(port_type: PortType) -> Any:
    """Fallback literal for an input that has no edge, override or default."""

    if port_type == PortType.NUMBER:
        return 0.0
    if port_type in (PortType.STRING, PortType.COLOR):
        return ""
    if port_type == PortType.BOOLEAN:
        return False
    if port_type == PortType.BYTE_BUFFER:
        return np.zeros(0, dtype=np.uint8)
    if port_type == PortType.FREQUENCY_ANALYSIS:
        return FrequencyAnalysis()
    if port_type == PortType.OBJECT:
        return {}
    if port_type == PortType.VECTOR3:
        return {"x": 0.0, "y": 0.0, "z": 0.0}
    if port_type == PortType.MATH_OP:
        return MathOperation.MULTIPLY.value
    return None


def to_number(value: Any, default: float = 0.0) -> float:
    """Parse ``value`` as a finite float, falling back to ``default``."""

    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
    elif isinstance(value, (bool, int, float, np.integer, np.floating)):
        parsed = float(value)
    else:
        return default
    return parsed if math.isfinite(parsed) else default


def coerce_value(value: Any, port_type: PortType, default: Any = None) -> Any:
    """Best-effort conversion of a resolved input to its port type. Never raises."""

    if value is None:
        value = copy.deepcopy(default) if default is not None else default_for_type(port_type)

    if port_type == PortType.NUMBER:
        return to_number(value)
    if port_type in (PortType.STRING, PortType.COLOR):
        return value if isinstance(value, str) else str(value)
    if port_type == PortType.BOOLEAN:
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        if isinstance(value, (bool, int, float, np.integer, np.floating)):
            return bool(value != 0)
        if isinstance(value, np.ndarray):
            return bool(value.size and np.any(value))
        return bool(value)
    if port_type == PortType.BYTE_BUFFER:
        return as_byte_array(value)
    if port_type == PortType.FREQUENCY_ANALYSIS:
        return FrequencyAnalysis.coerce(value)
    return value
