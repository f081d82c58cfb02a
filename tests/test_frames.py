from pathlib import Path

import numpy as np
import pytest

from audio_reactive_toolkit.frames import (
    AnalyserEmulator,
    iter_frames,
    read_wav,
    silence,
    tone,
    waveform_bytes,
    write_wav,
)


def test_waveform_bytes_center_on_128() -> None:
    assert waveform_bytes(np.array([-1.0, 0.0, 0.5, 1.0, 3.0])).tolist() == [0, 128, 192, 255, 255]


def test_analyser_rejects_bad_settings() -> None:
    with pytest.raises(ValueError, match="power of two"):
        AnalyserEmulator(44100, fft_size=1000)
    with pytest.raises(ValueError, match="smoothing"):
        AnalyserEmulator(44100, smoothing=1.0)


def test_spectrum_peaks_at_tone_bin() -> None:
    analyser = AnalyserEmulator(44100, fft_size=2048)
    block = tone(0.1, 44100, 1000.0, amplitude=0.01)

    spectrum = analyser.spectrum_bytes(block)

    assert spectrum.size == 1024
    assert 0 < spectrum.max() < 255
    assert int(np.argmax(spectrum)) in (46, 47)
    assert analyser.spectrum_bytes(silence(0.1, 44100)).max() == 0


def test_frames_carry_analyser_metadata_and_pad_short_blocks() -> None:
    analyser = AnalyserEmulator(22050, fft_size=512)

    frame = analyser.frame(np.zeros(100), time=1.25)

    assert frame.audio_signal.size == 512
    assert frame.frequency_analysis.sample_rate == 22050
    assert frame.frequency_analysis.fft_size == 512
    assert frame.frequency_analysis.spectrum.size == 256
    assert frame.time == 1.25


def test_tone_gate_silences_outside_window() -> None:
    samples = tone(1.0, 1000, 50.0, amplitude=0.5, gate_on_s=0.25, gate_off_s=0.75)

    assert not samples[:250].any()
    assert not samples[750:].any()
    assert np.abs(samples[250:750]).max() == pytest.approx(0.5, abs=1e-3)


def test_wav_round_trip(tmp_path: Path) -> None:
    samples = tone(0.05, 8000, 440.0)

    path = write_wav(tmp_path / "tone.wav", samples, 8000)
    loaded, sample_rate = read_wav(path)

    assert sample_rate == 8000
    assert loaded.shape == samples.shape
    assert np.allclose(loaded, samples, atol=1e-3)


def test_iter_frames_follows_frame_clock() -> None:
    analyser = AnalyserEmulator(8000, fft_size=256)

    frames = list(iter_frames(silence(1.0, 8000), analyser, 30.0, 10))

    assert len(frames) == 10
    assert frames[3].time == pytest.approx(0.1)
    assert all(frame.audio_signal.size == 256 for frame in frames)
