"""Nodes that read byte spectra: band selection, statistics and timbre."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from audio_reactive_toolkit.network.definitions import (
    EmptyState,
    NodeDefinition,
    PortSpec,
    TimedState,
    clamp,
    one_pole_alpha,
    step_time,
)
from audio_reactive_toolkit.network.ports import FrameContext, PortType

if TYPE_CHECKING:
    from audio_reactive_toolkit.network.graph import NodeInstance

EPS = 1e-6
FALLBACK_SAMPLE_RATE = 44100
FALLBACK_FFT_SIZE = 2048


def spectral_flatness(data: np.ndarray, scale: float = 255.0) -> float:
    """Wiener entropy of a byte spectrum, 0 (tonal) .. 1 (noise-like)."""

    x = data.astype(np.float64) / scale + EPS
    geometric = math.exp(float(np.mean(np.log(x))))
    arithmetic = float(np.mean(x))
    return clamp(geometric / arithmetic, 0.0, 1.0)


def positive_flux(current: np.ndarray, previous: np.ndarray | None) -> float:
    """Sum of bin increases since ``previous``; 0 if shapes differ."""

    if previous is None or previous.shape != current.shape:
        return 0.0
    diff = current.astype(np.int32) - previous.astype(np.int32)
    return float(np.sum(diff[diff > 0]))


class FrequencyBandNode(NodeDefinition):
    """Slice the bins covering ``[startFrequency, endFrequency]``.

    Bin width is ``(sampleRate / 2) / (fftSize / 2)``. The start bin is
    floored and the end bin ceiled so edge bins are included.
    """

    label = "Frequency Band"
    description = "Select a frequency range from FrequencyAnalysis and output just that band's Uint8Array."
    inputs = (
        PortSpec("frequencyAnalysis", "Frequency Analysis", PortType.FREQUENCY_ANALYSIS),
        PortSpec("startFrequency", "Start Frequency (Hz)", PortType.NUMBER, 0.0),
        PortSpec("endFrequency", "End Frequency (Hz)", PortType.NUMBER, 200.0),
    )
    outputs = (
        PortSpec("bandData", "Band Data", PortType.BYTE_BUFFER),
        PortSpec("bandStartBin", "Band Start Bin", PortType.NUMBER),
        PortSpec("frequencyPerBin", "Frequency/Bin (Hz)", PortType.NUMBER),
    )

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        analysis = inputs["frequencyAnalysis"]
        if analysis.is_empty:
            return {"bandData": np.zeros(0, dtype=np.uint8), "bandStartBin": 0, "frequencyPerBin": 0.0}

        spectrum = analysis.spectrum
        frequency_per_bin = (analysis.sample_rate / 2) / (analysis.fft_size / 2)
        start_bin = max(0, math.floor(inputs["startFrequency"] / frequency_per_bin))
        end_bin = min(spectrum.size - 1, math.ceil(inputs["endFrequency"] / frequency_per_bin))
        if start_bin > end_bin:
            return {
                "bandData": np.zeros(0, dtype=np.uint8),
                "bandStartBin": start_bin,
                "frequencyPerBin": frequency_per_bin,
            }
        return {
            "bandData": spectrum[start_bin : end_bin + 1].copy(),
            "bandStartBin": start_bin,
            "frequencyPerBin": frequency_per_bin,
        }


@dataclass
class PreviousSpectrumState:
    prev_data: np.ndarray | None = None


class BandInfoNode(NodeDefinition):
    label = "Band Info"
    description = (
        "Takes a Uint8Array (e.g. from FrequencyBand) and outputs useful statistics: "
        "average, peak, flatness, and flux."
    )
    inputs = (PortSpec("data", "Data", PortType.BYTE_BUFFER),)
    outputs = (
        PortSpec("average", "Average", PortType.NUMBER),
        PortSpec("peak", "Peak", PortType.NUMBER),
        PortSpec("flatness", "Flatness", PortType.NUMBER),
        PortSpec("flux", "Flux", PortType.NUMBER),
    )
    State = PreviousSpectrumState

    def default_outputs(self) -> dict[str, Any]:
        return {"average": 0.0, "peak": 0.0, "flatness": 1.0, "flux": 0.0}

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame
        data: np.ndarray = inputs["data"]
        if data.size == 0:
            return self.default_outputs()

        average = float(np.mean(data))
        peak = float(np.max(data))
        flatness = spectral_flatness(data)
        if node is None:
            return {"average": average, "peak": peak, "flatness": flatness, "flux": 0.0}

        state: PreviousSpectrumState = node.state
        flux = positive_flux(data, state.prev_data)
        state.prev_data = data.copy()
        return {"average": average, "peak": peak, "flatness": flatness, "flux": flux}


class AverageVolumeNode(NodeDefinition):
    label = "Average Volume"
    description = "Mean of a Uint8Array (waveform or band), 0..255."
    inputs = (PortSpec("data", "Data", PortType.BYTE_BUFFER),)
    outputs = (PortSpec("average", "Average", PortType.NUMBER),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        data: np.ndarray = inputs["data"]
        return {"average": float(np.mean(data)) if data.size else 0.0}


@dataclass
class FluxState(TimedState):
    prev_data: np.ndarray | None = None
    prev_flux: float | None = None


class SpectralFluxNode(NodeDefinition):
    """Wideband onset strength, smoothed with a one-pole filter.

    Raw flux is the positive bin change divided by 255, so a full-scale
    change of every bin equals the bin count.
    """

    label = "Spectral Flux"
    description = (
        "Frame-to-frame positive spectral change across the full spectrum. "
        "Good onset/transient detector."
    )
    inputs = (
        PortSpec("frequencyAnalysis", "Frequency Analysis", PortType.FREQUENCY_ANALYSIS),
        PortSpec("smoothMs", "Smooth (ms)", PortType.NUMBER, 50.0),
    )
    outputs = (PortSpec("flux", "Flux", PortType.NUMBER),)
    State = FluxState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        data: np.ndarray = inputs["frequencyAnalysis"].spectrum
        if node is None or data.size == 0:
            return {"flux": 0.0}

        state: FluxState = node.state
        raw = positive_flux(data, state.prev_data) / 255.0
        state.prev_data = data.copy()

        alpha = one_pole_alpha(step_time(state, frame.time), inputs["smoothMs"])
        prev = raw if state.prev_flux is None else state.prev_flux
        smoothed = prev + alpha * (raw - prev)
        state.prev_flux = smoothed
        return {"flux": smoothed}


@dataclass
class CentroidState(TimedState):
    prev_centroid: float | None = None


class SpectralCentroidNode(NodeDefinition):
    label = "Spectral Centroid"
    description = (
        'Calculates the "center of mass" of the frequency spectrum (in Hz). Low centroid = '
        "bass-heavy, high centroid = treble-heavy. Useful for detecting timbral changes."
    )
    inputs = (
        PortSpec("frequencyAnalysis", "Frequency Analysis", PortType.FREQUENCY_ANALYSIS),
        PortSpec("smoothMs", "Smooth (ms)", PortType.NUMBER, 50.0),
    )
    outputs = (
        PortSpec("centroid", "Centroid (Hz)", PortType.NUMBER),
        PortSpec("normalized", "Normalized", PortType.NUMBER),
    )
    State = CentroidState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        analysis = inputs["frequencyAnalysis"]
        data: np.ndarray = analysis.spectrum
        if node is None or data.size == 0:
            return {"centroid": 0.0, "normalized": 0.0}

        sample_rate = analysis.sample_rate or FALLBACK_SAMPLE_RATE
        fft_size = analysis.fft_size or FALLBACK_FFT_SIZE
        frequencies = np.arange(data.size, dtype=np.float64) * (sample_rate / fft_size)
        magnitudes = data.astype(np.float64)
        total = float(np.sum(magnitudes))
        raw = float(np.dot(frequencies, magnitudes)) / total if total > 0 else 0.0

        state: CentroidState = node.state
        alpha = one_pole_alpha(step_time(state, frame.time), inputs["smoothMs"])
        prev = raw if state.prev_centroid is None else state.prev_centroid
        smoothed = prev + alpha * (raw - prev)
        state.prev_centroid = smoothed
        return {"centroid": smoothed, "normalized": clamp((smoothed - 200.0) / 3800.0, 0.0, 1.0)}


# Weight for bins below each edge (Hz); the last weight covers everything above.
PERCEPTUAL_EDGES = np.array([20, 60, 150, 300, 600, 1500, 4000, 8000, 12000], dtype=np.float64)
PERCEPTUAL_WEIGHTS = np.array([0.0, 5.0, 4.0, 3.0, 2.0, 1.2, 0.8, 0.4, 0.2, 0.1])


def perceptual_weight(frequencies: np.ndarray) -> np.ndarray:
    return PERCEPTUAL_WEIGHTS[np.searchsorted(PERCEPTUAL_EDGES, frequencies, side="right")]


class MultiBandAnalysisNode(NodeDefinition):
    """Bass/mid/high energy with a perceptual weighting curve.

    Bins at or below ``bassMax`` count as bass, bins at or below ``midMax``
    as mids, and the rest as highs. Percentages are shares of the total.
    """

    label = "Multi-Band Analysis"
    description = (
        "Splits spectrum into Bass/Mids/Highs with perceptual weighting. "
        "Outputs both raw energy and percentage."
    )
    inputs = (
        PortSpec("frequencyAnalysis", "Frequency Analysis", PortType.FREQUENCY_ANALYSIS),
        PortSpec("bassMax", "Bass Max (Hz)", PortType.NUMBER, 250.0),
        PortSpec("midMax", "Mid Max (Hz)", PortType.NUMBER, 4000.0),
    )
    outputs = (
        PortSpec("bassEnergy", "Bass Energy", PortType.NUMBER),
        PortSpec("midEnergy", "Mid Energy", PortType.NUMBER),
        PortSpec("highEnergy", "High Energy", PortType.NUMBER),
        PortSpec("bassPercent", "Bass %", PortType.NUMBER),
        PortSpec("midPercent", "Mid %", PortType.NUMBER),
        PortSpec("highPercent", "High %", PortType.NUMBER),
    )

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        analysis = inputs["frequencyAnalysis"]
        data: np.ndarray = analysis.spectrum
        if data.size == 0:
            return self.default_outputs()

        sample_rate = analysis.sample_rate or FALLBACK_SAMPLE_RATE
        fft_size = analysis.fft_size or FALLBACK_FFT_SIZE
        frequencies = np.arange(data.size, dtype=np.float64) * (sample_rate / fft_size)
        weighted = data.astype(np.float64) * perceptual_weight(frequencies)

        bass_mask = frequencies <= inputs["bassMax"]
        mid_mask = ~bass_mask & (frequencies <= inputs["midMax"])
        high_mask = ~(bass_mask | mid_mask)
        bass = float(np.sum(weighted[bass_mask]))
        mid = float(np.sum(weighted[mid_mask]))
        high = float(np.sum(weighted[high_mask]))

        total = bass + mid + high
        scale = 1.0 / total if total > 0 else 0.0
        return {
            "bassEnergy": bass,
            "midEnergy": mid,
            "highEnergy": high,
            "bassPercent": bass * scale,
            "midPercent": mid * scale,
            "highPercent": high * scale,
        }


class TonalPresenceNode(NodeDefinition):
    label = "Tonal Presence"
    description = "Heuristic for voiced/synth presence in a band using peak level and spectral flatness."
    inputs = (
        PortSpec("data", "Data", PortType.BYTE_BUFFER),
        PortSpec("flatnessCutoff", "Flatness Cutoff", PortType.NUMBER, 0.6),
        PortSpec("peakScale", "Peak Scale", PortType.NUMBER, 255.0),
    )
    outputs = (
        PortSpec("presence", "Presence", PortType.NUMBER),
        PortSpec("peak", "Peak", PortType.NUMBER),
        PortSpec("flatness", "Flatness", PortType.NUMBER),
    )
    State = EmptyState

    def default_outputs(self) -> dict[str, Any]:
        return {"presence": 0.0, "peak": 0.0, "flatness": 1.0}

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        data: np.ndarray = inputs["data"]
        if data.size == 0:
            return self.default_outputs()

        scale = abs(inputs["peakScale"]) if inputs["peakScale"] != 0 else 255.0
        peak = clamp(float(np.max(data)) / scale, 0.0, 1.0)
        flatness = spectral_flatness(data, scale)
        cutoff = clamp(inputs["flatnessCutoff"], 1e-6, 1.0)
        tonal_boost = max(0.0, (cutoff - flatness) / cutoff)
        return {"presence": clamp(peak * tonal_boost, 0.0, 1.0), "peak": peak, "flatness": flatness}


@dataclass
class HarmonicState(TimedState):
    prev_presence: float = 0.0
    prev_f0: float | None = None


def hz_to_midi(hz: float) -> float:
    return 69.0 + 12.0 * math.log2(hz / 440.0) if hz > 0 else 0.0


class HarmonicPresenceNode(NodeDefinition):
    """Score harmonic series built on the strongest local maxima of a band.

    Each of the top 8 peaks is tried as a fundamental. A harmonic counts when
    the mean elevation (bin level above the band average) in a window of
    ``toleranceCents`` around it exceeds ``minSNR`` times the peak's own
    elevation. The best candidate's score is smoothed over ``smoothMs`` and
    its frequency is glided when it stays within 1.5x the tolerance.
    """

    label = "Harmonic Presence"
    description = (
        "Detects melodic/voiced content by scoring harmonic series in a "
        "band-limited spectrum (Uint8Array)."
    )
    inputs = (
        PortSpec("data", "Data", PortType.BYTE_BUFFER),
        PortSpec("bandStartBin", "Band Start Bin", PortType.NUMBER, 0.0),
        PortSpec("frequencyPerBin", "Frequency/Bin (Hz)", PortType.NUMBER, 0.0),
        PortSpec("maxHarmonics", "Max Harmonics", PortType.NUMBER, 8.0),
        PortSpec("toleranceCents", "Tolerance (cents)", PortType.NUMBER, 35.0),
        PortSpec("smoothMs", "Smooth (ms)", PortType.NUMBER, 120.0),
        PortSpec("minSNR", "Min Peak Rel. (0..1)", PortType.NUMBER, 0.05),
    )
    outputs = (
        PortSpec("presence", "Presence", PortType.NUMBER),
        PortSpec("fundamentalHz", "Fundamental (Hz)", PortType.NUMBER),
        PortSpec("midi", "MIDI", PortType.NUMBER),
        PortSpec("confidence", "Confidence", PortType.NUMBER),
    )
    State = HarmonicState

    max_candidates = 8

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        data: np.ndarray = inputs["data"]
        n = data.size
        if node is None or n < 4:
            return self.default_outputs()

        values = data.astype(np.float64)
        band_avg = float(np.mean(values))
        elevated = np.maximum(0.0, values - band_avg)
        band_elev_sum = float(np.sum(elevated))

        peak_idx = [i for i in range(1, n - 1) if values[i] > values[i - 1] and values[i] >= values[i + 1]]
        peak_idx.sort(key=lambda i: -values[i])
        candidates = peak_idx[: self.max_candidates]
        if not candidates:
            return self.default_outputs()

        max_h = max(1, math.floor(inputs["maxHarmonics"]))
        tol_cents = clamp(inputs["toleranceCents"], 5.0, 100.0)
        tol_ratio = 2 ** (tol_cents / 1200.0) - 1.0
        min_rel = clamp(inputs["minSNR"], 0.0, 1.0)
        start_bin = max(0.0, inputs["bandStartBin"])
        hz_per_bin = max(0.0, inputs["frequencyPerBin"])

        best_score = 0.0
        best_hz = 0.0
        for base in candidates:
            peak_elev = max(0.0, values[base] - band_avg)
            harmonic_energy = 0.0
            coverage = 0
            for k in range(1, max_h + 1):
                center = base * k
                if center >= n:
                    break
                half = max(1, math.ceil(center * tol_ratio))
                lo = max(0, center - half)
                hi = min(n - 1, center + half)
                window = elevated[lo : hi + 1]
                if float(np.mean(window)) > min_rel * (peak_elev + EPS):
                    coverage += 1
                    harmonic_energy += float(np.sum(window)) / k

            reachable = max(1, min(max_h, (n - 1) // max(1, base)))
            energy_ratio = harmonic_energy / max(EPS, band_elev_sum)
            score = clamp(math.sqrt(energy_ratio) * (0.6 + 0.4 * coverage / reachable), 0.0, 1.0)
            if score > best_score:
                best_score = score
                best_hz = (start_bin + base) * hz_per_bin if hz_per_bin > 0 else 0.0

        state: HarmonicState = node.state
        alpha = one_pole_alpha(step_time(state, frame.time), inputs["smoothMs"])
        presence = state.prev_presence + alpha * (best_score - state.prev_presence)

        prev_f0 = best_hz if state.prev_f0 is None else state.prev_f0
        f0 = best_hz
        if prev_f0 > 0 and best_hz > 0:
            cents = 1200.0 * math.log2(best_hz / prev_f0)
            if abs(cents) < tol_cents * 1.5:
                f0 = prev_f0 + alpha * (best_hz - prev_f0)

        state.prev_presence = presence
        state.prev_f0 = f0
        return {"presence": presence, "fundamentalHz": f0, "midi": hz_to_midi(f0), "confidence": presence}
