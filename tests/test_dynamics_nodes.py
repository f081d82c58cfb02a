from typing import Any

import pytest

from audio_reactive_toolkit.network.definitions import NodeDefinition
from audio_reactive_toolkit.network.graph import NodeInstance
from audio_reactive_toolkit.network.nodes.dynamics import (
    AdaptiveNormalizeQuantileNode,
    DuckerNode,
    EnvelopeFollowerNode,
    HysteresisGateNode,
    RateLimiterNode,
    RefractoryGateNode,
    SpikeNode,
    ThresholdCounterNode,
)
from audio_reactive_toolkit.network.ports import FrameContext

FPS = 60.0


def _drive(
    definition: NodeDefinition,
    values: list[float],
    times: list[float] | None = None,
    node: NodeInstance | None = None,
    **fixed: Any,
) -> list[dict[str, Any]]:
    node = node or NodeInstance("n", definition)
    if times is None:
        times = [index / FPS for index in range(len(values))]
    return [definition.run({"value": value, **fixed}, FrameContext(time=t), node) for value, t in zip(values, times)]


def test_envelope_converges_to_rectified_constant() -> None:
    outputs = _drive(EnvelopeFollowerNode(), [0.0] + [-0.8] * 120, attackMs=10, releaseMs=150)

    assert outputs[0]["env"] == 0.0
    assert outputs[-1]["env"] == pytest.approx(0.8, abs=1e-3)


def test_envelope_release_follows_time_constant() -> None:
    definition = EnvelopeFollowerNode()
    node = NodeInstance("env", definition)
    _drive(definition, [1.0] * 30, node=node, attackMs=5, releaseMs=150)

    release_times = [29 / FPS + index * 0.001 for index in range(1, 151)]
    outputs = _drive(definition, [0.0] * 150, times=release_times, node=node, attackMs=5, releaseMs=150)

    # One time constant after the drop the envelope has fallen to about 1/e.
    assert outputs[-1]["env"] == pytest.approx(0.3679, abs=0.01)
    assert all(a["env"] >= b["env"] for a, b in zip(outputs, outputs[1:]))


def test_envelope_is_frame_rate_independent() -> None:
    slow = _drive(EnvelopeFollowerNode(), [0.0] + [1.0] * 30, times=[i / 30 for i in range(31)], attackMs=300)
    fast = _drive(EnvelopeFollowerNode(), [0.0] + [1.0] * 120, times=[i / 120 for i in range(121)], attackMs=300)

    assert slow[-1]["env"] == pytest.approx(fast[-1]["env"], abs=1e-6)


def test_hysteresis_gate_latches_between_thresholds() -> None:
    outputs = _drive(HysteresisGateNode(), [0.0, 0.3, 0.6, 0.3, 0.1], low=0.2, high=0.5)

    assert [out["state"] for out in outputs] == [0, 0, 1, 1, 0]
    assert [out["gated"] for out in outputs] == [0.0, 0.0, 0.6, 0.3, 0.0]


def test_quantile_normalize_constant_stream_is_degenerate() -> None:
    outputs = _drive(AdaptiveNormalizeQuantileNode(), [0.4] * 120, windowMs=1000)

    last = outputs[-1]
    assert last["low"] == last["high"] == 0.4
    assert last["result"] == 0.0


def test_quantile_normalize_uses_floor_indices() -> None:
    values = [float(v) for v in range(100)]
    outputs = _drive(AdaptiveNormalizeQuantileNode(), values, windowMs=60000, qLow=0.1, qHigh=0.9)

    last = outputs[-1]
    assert last["low"] == 9.0
    assert last["high"] == 89.0
    assert last["result"] == 1.0


def test_quantile_normalize_drops_old_samples() -> None:
    definition = AdaptiveNormalizeQuantileNode()
    node = NodeInstance("adapt", definition)
    _drive(definition, [100.0], times=[0.0], node=node, windowMs=500)
    outputs = _drive(definition, [1.0, 2.0], times=[1.0, 1.1], node=node, windowMs=500, qLow=0.0, qHigh=1.0)

    assert outputs[-1]["low"] == 1.0
    assert outputs[-1]["high"] == 2.0


def test_quantile_normalize_freeze_keeps_window_and_snapshot() -> None:
    definition = AdaptiveNormalizeQuantileNode()
    node = NodeInstance("adapt", definition)

    first = _drive(definition, [0.05], node=node, freezeBelow=0.1)[0]
    assert first == {"result": 0.0, "low": 0.0, "high": 1.0}

    _drive(definition, [0.2, 0.6, 1.0], times=[1.0, 1.1, 1.2], node=node, freezeBelow=0.1, qLow=0.0, qHigh=1.0)
    frozen = _drive(definition, [0.05], times=[30.0], node=node, freezeBelow=0.1, qLow=0.0, qHigh=1.0)[0]

    assert frozen["low"] == 0.2
    assert frozen["high"] == 1.0
    assert len(node.state.samples) == 3


def test_threshold_counter_counts_rising_edges_modulo_max() -> None:
    outputs = _drive(ThresholdCounterNode(), [0, 1, 1, 0, 1, 0, 1], threshold=0.5, maxValue=2)

    assert [out["count"] for out in outputs] == [0, 1, 1, 1, 0, 0, 1]


def test_threshold_counter_treats_equal_as_above() -> None:
    outputs = _drive(ThresholdCounterNode(), [0.5, 0.5, 0.0, 0.5], threshold=0.5, maxValue=10)
    collapsed = _drive(ThresholdCounterNode(), [1.0, 0.0, 1.0], threshold=0.5, maxValue=0)

    assert [out["count"] for out in outputs] == [1, 1, 1, 2]
    # A max below one collapses to a single state.
    assert [out["count"] for out in collapsed] == [0, 0, 0]


def test_rate_limiter_holds_changes_inside_interval() -> None:
    outputs = _drive(RateLimiterNode(), [1, 2, 3, 4], times=[0.0, 0.1, 0.2, 0.3], minIntervalMs=250)

    assert [out["limited"] for out in outputs] == [1, 1, 1, 4]


def test_rate_limiter_passes_first_quick_change_and_holds_second() -> None:
    outputs = _drive(RateLimiterNode(), [1, 2, 3, 4], times=[0.0, 0.3, 0.4, 0.7], minIntervalMs=250)

    assert [out["limited"] for out in outputs] == [1, 2, 2, 4]


def test_rate_limiter_resets_when_time_jumps_back() -> None:
    definition = RateLimiterNode()
    node = NodeInstance("limit", definition)
    _drive(definition, [1, 2], times=[5.0, 5.1], node=node, minIntervalMs=250)

    looped = _drive(definition, [7], times=[0.0], node=node, minIntervalMs=250)

    assert looped[0]["limited"] == 7


def test_refractory_gate_blocks_pulses_inside_interval() -> None:
    outputs = _drive(RefractoryGateNode(), [1, 1, 1, 0], times=[0.0, 0.05, 0.13, 0.3], minIntervalMs=120)

    assert [out["gated"] for out in outputs] == [1, 0, 1, 0]


def test_spike_attacks_then_releases_to_zero() -> None:
    outputs = _drive(SpikeNode(), [100] + [0] * 20, threshold=50, attack=10, release=250)
    results = [out["result"] for out in outputs]

    assert results[0] == 0.0
    assert results[1] == pytest.approx(100 * (1 - (1000 / 60 - 10) / 250))
    assert results[-1] == 0.0
    assert all(a >= b for a, b in zip(results[1:], results[2:]))


def test_spike_ignores_values_below_threshold() -> None:
    outputs = _drive(SpikeNode(), [40] * 5, threshold=50)
    assert all(out["result"] == 0.0 for out in outputs)


def test_ducker_attenuates_after_trigger_then_recovers() -> None:
    definition = DuckerNode()
    node = NodeInstance("duck", definition)
    triggered = _drive(definition, [1.0], node=node, duckTrigger=1.0, depth=0.5)[0]
    later = _drive(definition, [1.0], times=[1.0], node=node, duckTrigger=0.0, depth=0.5)[0]

    assert triggered["out"] == pytest.approx(0.5)
    assert later["out"] == pytest.approx(1.0, abs=1e-3)


def test_stateful_nodes_without_instance_return_defaults() -> None:
    frame = FrameContext(time=1.0)

    assert EnvelopeFollowerNode().run({"value": -2}, frame) == {"env": 2.0}
    assert HysteresisGateNode().run({"value": 5}, frame) == {"gated": 0.0, "state": 0}
    assert AdaptiveNormalizeQuantileNode().run({"value": 5}, frame) == {"result": 0.0, "low": 0.0, "high": 1.0}
    assert ThresholdCounterNode().run({"value": 5}, frame) == {"count": 0}
