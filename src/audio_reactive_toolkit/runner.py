"""Offline simulation runs: evaluate a saved network over generated frames."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import yaml

from audio_reactive_toolkit.config import (
    ConfigValidationError,
    SignalSource,
    SimulationConfig,
    ToolkitSettings,
    load_and_validate_config,
)
from audio_reactive_toolkit.frames import AnalyserEmulator, iter_frames, read_wav, silence, tone
from audio_reactive_toolkit.instrumentation import StructuredLogger, ValueRecorder
from audio_reactive_toolkit.network.evaluator import NetworkEvaluator
from audio_reactive_toolkit.network.graph import Network
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY
from audio_reactive_toolkit.network.schema import validate_network_payload


def build_run_dir(name: str, runs_root: Path) -> Path:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    run_dir = runs_root / f"{timestamp}_{name}"
    run_dir.mkdir(parents=True, exist_ok=False)
    return run_dir


def load_network(path: Path) -> Network:
    """Read, validate and build a network from a persisted JSON file."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigValidationError(f"{path}: invalid JSON: {exc}") from exc
    record = validate_network_payload(payload, node_specs=NODE_REGISTRY.node_specs())
    return Network.from_record(record.to_payload())


def _signal(config: SimulationConfig, sample_rate: int, duration_s: float) -> tuple[np.ndarray, int]:
    if config.source == SignalSource.WAV:
        return read_wav(config.wav_path)
    if config.source == SignalSource.SILENCE:
        return silence(duration_s, sample_rate), sample_rate
    return (
        tone(
            duration_s,
            sample_rate,
            config.tone_hz,
            config.amplitude,
            config.gate_on_s,
            config.gate_off_s,
        ),
        sample_rate,
    )


def run_simulation(config_path: Path, settings: ToolkitSettings | None = None) -> Path:
    settings = settings or ToolkitSettings()
    config = load_and_validate_config(config_path, SimulationConfig)
    network = load_network(config.network)

    frame_rate = config.frame_rate or settings.frame_rate
    fft_size = config.fft_size or settings.fft_size
    n_frames = config.frame_count(frame_rate)
    # Pad so the last frame still has a full analysis block.
    duration_s = n_frames / frame_rate + fft_size / (config.sample_rate or settings.sample_rate)
    samples, sample_rate = _signal(config, config.sample_rate or settings.sample_rate, duration_s)

    run_dir = build_run_dir(network.id, settings.runs_root)
    with (run_dir / "config.yaml").open("w", encoding="utf-8") as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, sort_keys=True)
    (run_dir / "network.json").write_text(json.dumps(network.to_record(), indent=2), encoding="utf-8")

    logger = StructuredLogger(run_dir / "events.log", run_dir / "events.jsonl")
    recorder = ValueRecorder(run_dir / "values.jsonl")
    logger.log(
        "info",
        "run_started",
        message=f"network={network.id} frames={n_frames}",
        frames=n_frames,
        frame_rate=frame_rate,
        sample_rate=sample_rate,
        fft_size=fft_size,
        source=config.source.value,
    )

    evaluator = NetworkEvaluator()
    analyser = AnalyserEmulator(sample_rate, fft_size)
    try:
        for index, frame in enumerate(iter_frames(samples, analyser, frame_rate, n_frames)):
            value = evaluator.evaluate(network, frame)
            recorder.record(
                frame=index,
                time=frame.time,
                value=value,
                nodes=evaluator.latest_outputs if config.record_nodes else None,
            )
    except Exception as exc:
        logger.log("error", "run_failed", message=str(exc), frame=recorder.count)
        raise

    logger.log(
        "info",
        "run_completed",
        message=f"recorded {recorder.count} frames",
        frames=recorder.count,
        compute_calls=dict(evaluator.compute_calls),
    )
    return run_dir
