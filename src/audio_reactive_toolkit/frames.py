"""Offline frame sources shaped like a browser analyser's per-frame output."""

from __future__ import annotations

import wave
from collections.abc import Iterator
from pathlib import Path

import numpy as np

from audio_reactive_toolkit.network.ports import FrameContext, FrequencyAnalysis

MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


def waveform_bytes(samples: np.ndarray) -> np.ndarray:
    """Map float samples in [-1, 1] to bytes centred on 128."""

    scaled = np.floor(128.0 * (1.0 + np.clip(samples, -1.0, 1.0)))
    return np.clip(scaled, 0, 255).astype(np.uint8)


class AnalyserEmulator:
    """Blackman-windowed FFT magnitudes in dB, mapped to 0..255 bytes.

    ``smoothing`` blends each magnitude with the previous frame's, as a Web
    Audio ``AnalyserNode`` does with its smoothing time constant.
    """

    def __init__(self, sample_rate: int, fft_size: int = 2048, smoothing: float = 0.0) -> None:
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        self.sample_rate = sample_rate
        self.fft_size = fft_size
        self.smoothing = smoothing
        self._window = np.blackman(fft_size)
        self._previous = np.zeros(fft_size // 2)

    def spectrum_bytes(self, block: np.ndarray) -> np.ndarray:
        block = _fit(block, self.fft_size)
        magnitude = np.abs(np.fft.rfft(block * self._window))[: self.fft_size // 2] / self.fft_size
        if self.smoothing:
            magnitude = self.smoothing * self._previous + (1.0 - self.smoothing) * magnitude
        self._previous = magnitude
        decibels = 20.0 * np.log10(np.maximum(magnitude, 1e-12))
        scaled = 255.0 * (decibels - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def frame(self, block: np.ndarray, time: float) -> FrameContext:
        block = _fit(block, self.fft_size)
        return FrameContext(
            audio_signal=waveform_bytes(block),
            frequency_analysis=FrequencyAnalysis(
                spectrum=self.spectrum_bytes(block),
                sample_rate=self.sample_rate,
                fft_size=self.fft_size,
            ),
            time=time,
        )


def _fit(block: np.ndarray, size: int) -> np.ndarray:
    block = np.asarray(block, dtype=np.float64).reshape(-1)
    if block.size >= size:
        return block[:size]
    return np.pad(block, (0, size - block.size))


def silence(duration_s: float, sample_rate: int) -> np.ndarray:
    return np.zeros(int(round(duration_s * sample_rate)))


def tone(
    duration_s: float,
    sample_rate: int,
    hz: float,
    amplitude: float = 0.8,
    gate_on_s: float = 0.0,
    gate_off_s: float | None = None,
) -> np.ndarray:
    """Sine wave that sounds only between ``gate_on_s`` and ``gate_off_s``."""

    t = np.arange(int(round(duration_s * sample_rate))) / sample_rate
    signal = amplitude * np.sin(2 * np.pi * hz * t)
    gate = t >= gate_on_s
    if gate_off_s is not None:
        gate &= t < gate_off_s
    return np.where(gate, signal, 0.0)


def read_wav(path: Path) -> tuple[np.ndarray, int]:
    """Mono float samples and the sample rate of a 16-bit PCM WAV file."""

    with wave.open(str(path), "rb") as wavf:
        n_frames = wavf.getnframes()
        n_channels = wavf.getnchannels()
        sampwidth = wavf.getsampwidth()
        sample_rate = wavf.getframerate()
        frames = wavf.readframes(n_frames)
    if sampwidth != 2:
        raise ValueError(f"{path}: only 16-bit PCM WAV is supported")
    arr = np.frombuffer(frames, dtype="<i2").astype(np.float64)
    if n_channels > 1:
        arr = arr.reshape(-1, n_channels).mean(axis=1)
    return arr / 32768.0, sample_rate


def write_wav(path: Path, samples: np.ndarray, sample_rate: int) -> Path:
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    with wave.open(str(path), "wb") as f:
        f.setnchannels(1)
        f.setsampwidth(2)
        f.setframerate(sample_rate)
        f.writeframes(pcm.tobytes())
    return path


def iter_frames(
    samples: np.ndarray,
    analyser: AnalyserEmulator,
    frame_rate: float,
    n_frames: int,
) -> Iterator[FrameContext]:
    """One frame per render tick; the block starts at the tick's sample position."""

    for index in range(n_frames):
        time = index / frame_rate
        start = int(round(time * analyser.sample_rate))
        yield analyser.frame(samples[start : start + analyser.fft_size], time)
