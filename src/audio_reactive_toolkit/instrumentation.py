"""Run logging: structured event logs and per-frame value recordings."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

from audio_reactive_toolkit.network.ports import FrequencyAnalysis


def configure_logging(level: str = "WARNING") -> None:
    """Route library loggers to stderr at ``level``."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def to_jsonable(value: Any) -> Any:
    """Port values as JSON: arrays become lists, spectra become mappings."""

    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, FrequencyAnalysis):
        return {
            "spectrum": value.spectrum.tolist(),
            "sampleRate": value.sample_rate,
            "fftSize": value.fft_size,
        }
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


class StructuredLogger:
    """Dual logger that emits human-readable and JSON log events."""

    def __init__(self, text_log_path: Path, json_log_path: Path) -> None:
        self.text_log_path = text_log_path
        self.json_log_path = json_log_path

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def log(self, level: str, event: str, **payload: Any) -> None:
        timestamp = self._now()
        record = {
            "timestamp": timestamp,
            "level": level.upper(),
            "event": event,
            "payload": to_jsonable(payload),
        }

        message = payload.get("message", "")
        with self.text_log_path.open("a", encoding="utf-8") as text_file:
            text_file.write(f"{timestamp} [{level.upper()}] {event} {message}\n")

        with self.json_log_path.open("a", encoding="utf-8") as json_file:
            json_file.write(json.dumps(record) + "\n")


class ValueRecorder:
    """Writes one JSONL record per evaluated frame."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.count = 0

    def record(
        self,
        *,
        frame: int,
        time: float,
        value: Any,
        nodes: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        record: dict[str, Any] = {"frame": frame, "time": time, "value": to_jsonable(value)}
        if nodes is not None:
            # Buffers are dropped to keep per-frame records small.
            record["nodes"] = {
                node_id: {
                    port: to_jsonable(item)
                    for port, item in outputs.items()
                    if not isinstance(item, (np.ndarray, FrequencyAnalysis))
                }
                for node_id, outputs in nodes.items()
            }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
        self.count += 1
