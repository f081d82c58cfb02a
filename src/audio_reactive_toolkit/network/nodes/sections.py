"""Section-level change detection with cooldown and trigger hold."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from audio_reactive_toolkit.network.definitions import NodeDefinition, PortSpec, clamp
from audio_reactive_toolkit.network.ports import FrameContext, PortType

if TYPE_CHECKING:
    from audio_reactive_toolkit.network.graph import NodeInstance

NEVER_MS = -999999.0
ASSUMED_FPS = 60


@dataclass
class TriggerClock:
    """Cooldown/hold bookkeeping shared by the section detectors (times in ms)."""

    last_trigger_ms: float = NEVER_MS
    trigger_ms: float = NEVER_MS

    def step(self, now_ms: float, fire: bool, cooldown_ms: float, hold_ms: float) -> tuple[int, int]:
        """Return ``(trigger, cooldown_active)`` for this frame."""

        since_last = now_ms - self.last_trigger_ms
        since_trigger = now_ms - self.trigger_ms
        if since_last < 0 or since_trigger < 0:
            # Playback looped.
            self.last_trigger_ms = NEVER_MS
            self.trigger_ms = NEVER_MS
            since_last = since_trigger = math.inf

        if since_last < cooldown_ms:
            return (1 if since_trigger < hold_ms else 0), 1
        if fire:
            self.last_trigger_ms = now_ms
            self.trigger_ms = now_ms
            return 1, 1
        return 0, 0


@dataclass
class SectionChangeState:
    clock: TriggerClock = field(default_factory=TriggerClock)
    prev_value: float | None = None


class SectionChangeDetectorNode(NodeDefinition):
    """Fire once when the frame-to-frame change of a signal reaches ``threshold``.

    After firing, ``trigger`` stays 1 for ``holdMs`` and no new trigger can
    fire for ``cooldownMs``. Time running backwards clears the cooldown.
    """

    label = "Section Change Detector"
    description = (
        "Detects significant changes in any input signal. Triggers once per "
        "transition with cooldown. Useful for section changes or mode switches."
    )
    inputs = (
        PortSpec("flux", "Value", PortType.NUMBER, 0.0),
        PortSpec("threshold", "Threshold", PortType.NUMBER, 0.5),
        PortSpec("cooldownMs", "Cooldown (ms)", PortType.NUMBER, 2000.0),
        PortSpec("holdMs", "Hold Time (ms)", PortType.NUMBER, 100.0),
    )
    outputs = (
        PortSpec("trigger", "Trigger", PortType.NUMBER),
        PortSpec("cooldownActive", "Cooldown Active", PortType.NUMBER),
        PortSpec("change", "Change", PortType.NUMBER),
    )
    State = SectionChangeState

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        if node is None:
            return {"trigger": 0, "cooldownActive": 0, "change": 0.0}

        state: SectionChangeState = node.state
        value = inputs["flux"]
        if state.prev_value is None:
            state.prev_value = value
        change = abs(value - state.prev_value)
        state.prev_value = value

        trigger, cooldown_active = state.clock.step(
            frame.time * 1000.0,
            change >= inputs["threshold"],
            max(100.0, inputs["cooldownMs"]),
            max(10.0, inputs["holdMs"]),
        )
        return {"trigger": trigger, "cooldownActive": cooldown_active, "change": change}


@dataclass
class AdaptiveSectionState:
    clock: TriggerClock = field(default_factory=TriggerClock)
    energy: deque[float] = field(default_factory=deque)
    differences: deque[float] = field(default_factory=deque)


class AdaptiveSectionDetectorNode(NodeDefinition):
    """Self-calibrating section detector on waveform energy.

    RMS energy (0..100) is averaged over two adjacent windows of
    ``buffer_frames`` frames; their absolute difference is compared with a
    rolling percentile of past differences covering ``windowMs`` at an
    assumed 60 fps. No threshold is reported until ``min_history`` frames
    have been seen, and a threshold at or below 0.1 never fires.
    """

    label = "Adaptive Section Detector"
    description = (
        "Adaptive section detector that tracks energy difference percentiles "
        "to detect significant changes. Auto-calibrates to each song."
    )
    inputs = (
        PortSpec("audioSignal", "Audio Signal", PortType.BYTE_BUFFER),
        PortSpec("percentile", "Percentile", PortType.NUMBER, 0.95),
        PortSpec("windowMs", "Window (ms)", PortType.NUMBER, 4000.0),
        PortSpec("cooldownMs", "Cooldown (ms)", PortType.NUMBER, 2000.0),
        PortSpec("holdMs", "Hold Time (ms)", PortType.NUMBER, 100.0),
    )
    outputs = (
        PortSpec("trigger", "Trigger", PortType.NUMBER),
        PortSpec("difference", "Difference", PortType.NUMBER),
        PortSpec("threshold", "Threshold", PortType.NUMBER),
    )
    State = AdaptiveSectionState

    buffer_frames = 9
    min_history = 30
    min_threshold = 0.1

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        signal: np.ndarray = inputs["audioSignal"]
        if node is None or signal.size == 0:
            return {"trigger": 0, "difference": 0.0, "threshold": 0.0}

        state: AdaptiveSectionState = node.state
        p = clamp(inputs["percentile"], 0.5, 0.999)
        window_ms = max(1000.0, inputs["windowMs"])

        centered = (signal.astype(np.float64) - 128.0) / 128.0
        energy = math.sqrt(float(np.mean(centered * centered))) * 100.0

        state.energy.append(energy)
        while len(state.energy) > self.buffer_frames * 2:
            state.energy.popleft()

        difference = 0.0
        if len(state.energy) >= self.buffer_frames * 2:
            buffered = np.fromiter(state.energy, dtype=np.float64)
            previous = float(np.mean(buffered[: self.buffer_frames]))
            current = float(np.mean(buffered[self.buffer_frames :]))
            difference = abs(current - previous)

        history_len = math.ceil(window_ms / 1000.0 * ASSUMED_FPS)
        state.differences.append(difference)
        while len(state.differences) > history_len:
            state.differences.popleft()

        threshold = 0.0
        if len(state.differences) >= self.min_history:
            ordered = sorted(state.differences)
            threshold = ordered[min(len(ordered) - 1, math.floor(len(ordered) * p))]

        fire = difference > threshold and threshold > self.min_threshold
        trigger, _ = state.clock.step(
            frame.time * 1000.0,
            fire,
            max(100.0, inputs["cooldownMs"]),
            max(10.0, inputs["holdMs"]),
        )
        return {"trigger": trigger, "difference": difference, "threshold": threshold}
