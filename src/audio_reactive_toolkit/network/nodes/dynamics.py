"""Stateful smoothing, gating and triggering nodes for scalar signals."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from audio_reactive_toolkit.network.definitions import (
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


@dataclass
class EnvelopeState(TimedState):
    prev_env: float | None = None


class EnvelopeFollowerNode(NodeDefinition):
    """Rectify, then follow with separate attack and release time constants.

    Coefficients come from the real frame delta, so the envelope has the
    same shape at any frame rate.
    """

    label = "Envelope Follower"
    description = "Rectifies and smooths a signal with separate attack/release using time-aware coefficients."
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("attackMs", "Attack (ms)", PortType.NUMBER, 10.0),
        PortSpec("releaseMs", "Release (ms)", PortType.NUMBER, 150.0),
    )
    outputs = (PortSpec("env", "Envelope", PortType.NUMBER),)
    State = EnvelopeState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        value = abs(inputs["value"])
        if node is None:
            return {"env": value}

        state: EnvelopeState = node.state
        if state.prev_env is None or not math.isfinite(state.prev_env):
            state.prev_env = value
        prev_env = state.prev_env
        dt = step_time(state, frame.time)

        attack = one_pole_alpha(dt, inputs["attackMs"])
        release = one_pole_alpha(dt, inputs["releaseMs"])
        coef = attack if value > prev_env else release
        # Only the lower bound is clamped so 0..255 and 0..1 sources both work.
        env = max(0.0, prev_env + coef * (value - prev_env))
        state.prev_env = env
        return {"env": env}


@dataclass
class QuantileState:
    samples: deque[tuple[float, float]] = field(default_factory=deque)
    prev_low: float = 0.0
    prev_high: float = 1.0
    prev_result: float = 0.0


class AdaptiveNormalizeQuantileNode(NodeDefinition):
    """Rolling-quantile normaliser over a time window.

    While frozen (input at or below ``freezeBelow``) no samples are added or
    expired, so the mapping learnt before a break is kept. An empty window
    returns the last snapshot instead of zero.
    """

    label = "Adaptive Normalize (Quantile)"
    description = (
        "Continuously normalizes a signal using rolling quantiles over a time window. "
        "Add freeze-below to stop adapting during breaks."
    )
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("windowMs", "Window (ms)", PortType.NUMBER, 4000.0),
        PortSpec("qLow", "Low Quantile (0..1)", PortType.NUMBER, 0.5),
        PortSpec("qHigh", "High Quantile (0..1)", PortType.NUMBER, 0.95),
        PortSpec("freezeBelow", "Freeze Below", PortType.NUMBER, 0.0),
    )
    outputs = (
        PortSpec("result", "Result", PortType.NUMBER),
        PortSpec("low", "Low", PortType.NUMBER),
        PortSpec("high", "High", PortType.NUMBER),
    )
    State = QuantileState

    def default_outputs(self) -> dict[str, Any]:
        return {"result": 0.0, "low": 0.0, "high": 1.0}

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        if node is None:
            return self.default_outputs()

        value = inputs["value"]
        t = frame.time
        window_sec = max(0.001, inputs["windowMs"] / 1000.0)
        q_low = clamp(inputs["qLow"], 0.0, 1.0)
        q_high = max(q_low, min(1.0, inputs["qHigh"]))
        freeze_threshold = max(0.0, inputs["freezeBelow"])
        frozen = freeze_threshold > 0 and value <= freeze_threshold

        state: QuantileState = node.state
        if not frozen:
            state.samples.append((t, value))
            while state.samples and t - state.samples[0][0] > window_sec:
                state.samples.popleft()

        n = len(state.samples)
        if n == 0:
            return {"result": state.prev_result, "low": state.prev_low, "high": state.prev_high}

        values = np.sort(np.fromiter((v for _, v in state.samples), dtype=np.float64, count=n))
        low = float(values[int(clamp(math.floor(q_low * (n - 1)), 0, n - 1))])
        high = float(values[int(clamp(math.floor(q_high * (n - 1)), 0, n - 1))])
        span = high - low
        result = clamp((value - low) / span, 0.0, 1.0) if span > 1e-9 else 0.0

        state.prev_low = low
        state.prev_high = high
        state.prev_result = result
        return {"result": result, "low": low, "high": high}


@dataclass
class GateState:
    open: bool = False


class HysteresisGateNode(NodeDefinition):
    label = "Hysteresis Gate"
    description = "Binary gate with separate open/close thresholds (high/low) to avoid chatter."
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("low", "Low", PortType.NUMBER, 0.02),
        PortSpec("high", "High", PortType.NUMBER, 0.08),
    )
    outputs = (
        PortSpec("gated", "Gated", PortType.NUMBER),
        PortSpec("state", "State (0/1)", PortType.NUMBER),
    )
    State = GateState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame
        if node is None:
            return {"gated": 0.0, "state": 0}

        state: GateState = node.state
        value = inputs["value"]
        if state.open:
            if value < inputs["low"]:
                state.open = False
        elif value > inputs["high"]:
            state.open = True
        return {"gated": value if state.open else 0.0, "state": 1 if state.open else 0}


@dataclass
class CounterState:
    counter: int = 0
    was_above: bool = False


class ThresholdCounterNode(NodeDefinition):
    label = "Threshold Counter"
    description = (
        "Increments a counter each time the input value crosses above the threshold. "
        "The counter wraps around using modulo (counter % maxValue)."
    )
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("threshold", "Threshold", PortType.NUMBER, 0.5),
        PortSpec("maxValue", "Max Value", PortType.NUMBER, 5.0),
    )
    outputs = (PortSpec("count", "Count", PortType.NUMBER),)
    State = CounterState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame
        if node is None:
            return {"count": 0}

        state: CounterState = node.state
        modulus = max(1, math.floor(inputs["maxValue"]))
        above = inputs["value"] >= inputs["threshold"]
        if above and not state.was_above:
            state.counter = (state.counter + 1) % modulus
        state.was_above = above
        return {"count": state.counter}


@dataclass
class RateLimiterState:
    last_value: float | None = None
    last_change_ms: float = 0.0


class RateLimiterNode(NodeDefinition):
    """Hold the last accepted value until it differs and the interval has passed."""

    label = "Rate Limiter"
    description = (
        "Limits how often the output value can change by enforcing a minimum "
        "time interval between changes."
    )
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("minIntervalMs", "Min Interval (ms)", PortType.NUMBER, 250.0),
    )
    outputs = (PortSpec("limited", "Limited", PortType.NUMBER),)
    State = RateLimiterState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        if node is None:
            return {"limited": 0.0}

        state: RateLimiterState = node.state
        value = inputs["value"]
        min_interval = max(0.0, inputs["minIntervalMs"])
        now_ms = frame.time * 1000.0

        if state.last_value is None:
            state.last_value = value
            state.last_change_ms = now_ms
            return {"limited": value}

        since_change = now_ms - state.last_change_ms
        if since_change < 0:
            # Playback looped.
            state.last_value = value
            state.last_change_ms = now_ms
            return {"limited": value}

        if value != state.last_value and since_change >= min_interval:
            state.last_value = value
            state.last_change_ms = now_ms
        return {"limited": state.last_value}


@dataclass
class RefractoryState:
    last_fire: float = -math.inf


class RefractoryGateNode(NodeDefinition):
    label = "Refractory Gate"
    description = "Allows a pulse only if a minimum interval since last pulse has passed."
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("minIntervalMs", "Min Interval (ms)", PortType.NUMBER, 120.0),
    )
    outputs = (PortSpec("gated", "Gated", PortType.NUMBER),)
    State = RefractoryState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        if node is None:
            return {"gated": 0.0}

        state: RefractoryState = node.state
        interval = max(1.0, inputs["minIntervalMs"]) / 1000.0
        value = inputs["value"]
        if value > 0 and frame.time - state.last_fire >= interval:
            state.last_fire = frame.time
            return {"gated": value}
        return {"gated": 0.0}


SPIKE_FRAME_MS = 1000.0 / 60.0


@dataclass
class SpikeState:
    peak: float = 0.0
    since_peak_ms: float = math.inf


class SpikeNode(NodeDefinition):
    """Attack/release pulse shaped on a fixed 60 fps frame clock."""

    label = "Spike"
    description = (
        "Detect transient spikes over a threshold with attack/release shaping. "
        "Good for percussive triggers."
    )
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("threshold", "Threshold", PortType.NUMBER, 50.0),
        PortSpec("attack", "Attack (ms)", PortType.NUMBER, 10.0),
        PortSpec("release", "Release (ms)", PortType.NUMBER, 250.0),
    )
    outputs = (PortSpec("result", "Result", PortType.NUMBER),)
    State = SpikeState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame
        if node is None:
            return {"result": 0.0}

        state: SpikeState = node.state
        value = inputs["value"]
        attack = max(1e-6, inputs["attack"])
        release = max(1e-6, inputs["release"])

        state.since_peak_ms += SPIKE_FRAME_MS
        idle = state.since_peak_ms >= attack + release
        if idle and value > inputs["threshold"]:
            state.since_peak_ms = 0.0
            state.peak = value

        if state.since_peak_ms < attack:
            state.peak = max(state.peak, value)
            result = (state.since_peak_ms / attack) * state.peak
        elif state.since_peak_ms < attack + release:
            in_release = state.since_peak_ms - attack
            result = (1.0 - in_release / release) * state.peak
        else:
            result = 0.0
            state.peak = 0.0
        return {"result": max(0.0, result)}


@dataclass
class DuckerState(TimedState):
    duck_level: float = 0.0


class DuckerNode(NodeDefinition):
    label = "Ducker"
    description = "Attenuates a value briefly after a trigger (e.g., spectral flux) using exponential decay."
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("duckTrigger", "Duck Trigger", PortType.NUMBER, 0.0),
        PortSpec("threshold", "Trigger Threshold", PortType.NUMBER, 0.6),
        PortSpec("depth", "Depth (0..1)", PortType.NUMBER, 0.5),
        PortSpec("duckMs", "Duck Time (ms)", PortType.NUMBER, 120.0),
    )
    outputs = (PortSpec("out", "Out", PortType.NUMBER),)
    State = DuckerState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        value = inputs["value"]
        if node is None:
            return {"out": value}

        state: DuckerState = node.state
        dt = step_time(state, frame.time)
        decay = math.exp(-dt / (max(1.0, inputs["duckMs"]) / 1000.0))
        depth = clamp(inputs["depth"], 0.0, 1.0)

        level = state.duck_level
        if inputs["duckTrigger"] > inputs["threshold"]:
            level = 1.0
        level *= decay
        state.duck_level = level
        return {"out": value * (1.0 - depth * clamp(level, 0.0, 1.0))}
