import json
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from audio_reactive_toolkit.config import ConfigValidationError, ToolkitSettings
from audio_reactive_toolkit.frames import tone, write_wav
from audio_reactive_toolkit.network.presets import PRESETS, instantiate_preset
from audio_reactive_toolkit.runner import build_run_dir, load_network, run_simulation


def _read_jsonl(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _write_network(path: Path, preset_id: str = "number-kick-band-smoothed", parameter: str = "kick") -> Path:
    network = instantiate_preset(PRESETS.get(preset_id), parameter)
    path.write_text(json.dumps(network.to_record()), encoding="utf-8")
    return path


def _write_config(path: Path, **values: object) -> Path:
    path.write_text(yaml.safe_dump(values), encoding="utf-8")
    return path


def test_build_run_dir_is_unique(tmp_path: Path) -> None:
    first = build_run_dir("kick", tmp_path)
    second = build_run_dir("kick", tmp_path)

    assert first != second
    assert first.name.endswith("_kick")


def test_simulation_writes_run_artifacts(tmp_path: Path) -> None:
    _write_network(tmp_path / "kick.json")
    config_path = _write_config(tmp_path / "sim.yaml", network="kick.json", frames=12, tone_hz=90, record_nodes=True)

    run_dir = run_simulation(config_path, ToolkitSettings(runs_root=tmp_path / "runs"))

    assert run_dir.parent == tmp_path / "runs"
    for name in ("config.yaml", "network.json", "events.log", "events.jsonl", "values.jsonl"):
        assert (run_dir / name).exists()
    values = _read_jsonl(run_dir / "values.jsonl")
    assert [record["frame"] for record in values] == list(range(12))
    assert values[-1]["value"] > 0
    assert "kick-preset-3-env" in values[-1]["nodes"]
    events = [record["event"] for record in _read_jsonl(run_dir / "events.jsonl")]
    assert events == ["run_started", "run_completed"]


def test_simulation_reads_wav_sources(tmp_path: Path) -> None:
    write_wav(tmp_path / "loop.wav", tone(0.5, 8000, 200.0), 8000)
    _write_network(tmp_path / "volume.json", "number-average-volume", "volume")
    config_path = _write_config(
        tmp_path / "sim.yaml",
        network="volume.json",
        duration_s=0.25,
        frame_rate=20,
        source="wav",
        wav_path="loop.wav",
        fft_size=256,
    )

    run_dir = run_simulation(config_path, ToolkitSettings(runs_root=tmp_path / "runs"))

    values = _read_jsonl(run_dir / "values.jsonl")
    assert len(values) == 5
    assert all(0.0 <= record["value"] <= 1.0 for record in values)
    assert "nodes" not in values[0]


def test_load_network_rejects_invalid_files(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    no_output = tmp_path / "no_output.json"
    no_output.write_text(json.dumps({"id": "p", "nodes": []}), encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="invalid JSON"):
        load_network(broken)
    with pytest.raises(ValidationError, match="exactly one Output"):
        load_network(no_output)
