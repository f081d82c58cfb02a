from pathlib import Path

import pytest

from audio_reactive_toolkit.config import (
    ConfigValidationError,
    SignalSource,
    SimulationConfig,
    ToolkitSettings,
    load_and_validate_config,
    validate_config_dict,
)


def test_valid_config_loads_and_resolves_paths(tmp_path: Path) -> None:
    config_path = tmp_path / "sim.yaml"
    config_path.write_text(
        "network: networks/kick.json\nduration_s: 2\nsource: wav\nwav_path: audio/loop.wav\n",
        encoding="utf-8",
    )

    config = load_and_validate_config(config_path, SimulationConfig)

    assert config.network == tmp_path / "networks" / "kick.json"
    assert config.wav_path == tmp_path / "audio" / "loop.wav"
    assert config.source is SignalSource.WAV
    assert config.frame_count(30.0) == 60


def test_invalid_config_fails_validation(tmp_path: Path) -> None:
    config_path = tmp_path / "sim.yaml"
    config_path.write_text("network: net.json\nframes: 0\nextra_field: true\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError):
        load_and_validate_config(config_path, SimulationConfig)


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ({"network": "n.json"}, "one of frames or duration_s"),
        ({"network": "n.json", "frames": 4, "source": "wav"}, "wav_path is required"),
        ({"network": "n.json", "frames": 4, "gate_on_s": 2, "gate_off_s": 1}, "gate_off_s"),
        (["network"], "root must be a mapping"),
    ],
)
def test_config_rules(raw: object, message: str) -> None:
    with pytest.raises(ConfigValidationError, match=message):
        validate_config_dict(raw, SimulationConfig)


def test_invalid_yaml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "broken.yaml"
    config_path.write_text("network: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="invalid YAML"):
        load_and_validate_config(config_path, SimulationConfig)


def test_frames_take_precedence_over_duration() -> None:
    config = SimulationConfig(network=Path("n.json"), frames=7, duration_s=10)

    assert config.frame_count(60.0) == 7


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ART_FRAME_RATE", "30")
    monkeypatch.setenv("ART_RUNS_ROOT", str(tmp_path))
    monkeypatch.setenv("ART_LOG_LEVEL", "debug")

    settings = ToolkitSettings()

    assert settings.frame_rate == 30.0
    assert settings.runs_root == tmp_path
    assert settings.log_level == "debug"
    assert settings.fft_size == 2048
