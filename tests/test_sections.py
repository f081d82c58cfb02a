import numpy as np

from audio_reactive_toolkit.network.graph import NodeInstance
from audio_reactive_toolkit.network.nodes.sections import (
    AdaptiveSectionDetectorNode,
    SectionChangeDetectorNode,
    TriggerClock,
)
from audio_reactive_toolkit.network.ports import FrameContext


def test_trigger_clock_holds_and_cools_down() -> None:
    clock = TriggerClock()

    assert clock.step(0.0, True, cooldown_ms=500, hold_ms=100) == (1, 1)
    assert clock.step(50.0, False, cooldown_ms=500, hold_ms=100) == (1, 1)
    assert clock.step(200.0, True, cooldown_ms=500, hold_ms=100) == (0, 1)
    assert clock.step(600.0, False, cooldown_ms=500, hold_ms=100) == (0, 0)
    assert clock.step(700.0, True, cooldown_ms=500, hold_ms=100) == (1, 1)


def test_section_change_fires_once_per_transition() -> None:
    definition = SectionChangeDetectorNode()
    node = NodeInstance("section", definition)
    values = [0, 0, 1, 1, 1, 0]
    times = [0.0, 0.1, 0.2, 0.25, 0.35, 3.0]

    outputs = [
        definition.run({"flux": value, "threshold": 0.5}, FrameContext(time=t), node)
        for value, t in zip(values, times)
    ]

    assert [out["trigger"] for out in outputs] == [0, 0, 1, 1, 0, 1]
    assert [out["cooldownActive"] for out in outputs] == [0, 0, 1, 1, 1, 1]
    assert [out["change"] for out in outputs] == [0, 0, 1, 0, 0, 1]


def test_section_change_cooldown_resets_when_time_jumps_back() -> None:
    definition = SectionChangeDetectorNode()
    node = NodeInstance("section", definition)
    definition.run({"flux": 0}, FrameContext(time=5.0), node)
    fired = definition.run({"flux": 1}, FrameContext(time=5.1), node)

    looped = definition.run({"flux": 0}, FrameContext(time=0.2), node)

    assert fired["trigger"] == 1
    assert looped["trigger"] == 1


def test_adaptive_section_stays_quiet_on_steady_audio() -> None:
    definition = AdaptiveSectionDetectorNode()
    node = NodeInstance("adaptive", definition)
    steady = np.full(256, 200, dtype=np.uint8)

    outputs = [definition.run({"audioSignal": steady}, FrameContext(time=i / 60), node) for i in range(60)]

    assert all(out["trigger"] == 0 for out in outputs)
    assert all(out["threshold"] == 0.0 for out in outputs[:29])
    assert all(out["difference"] == 0.0 for out in outputs)


def test_adaptive_section_fires_on_energy_jump() -> None:
    definition = AdaptiveSectionDetectorNode()
    node = NodeInstance("adaptive", definition)
    quiet = np.full(256, 130, dtype=np.uint8)
    loud = np.full(256, 255, dtype=np.uint8)
    signals = [quiet] * 60 + [loud] * 30

    outputs = [
        definition.run({"audioSignal": signal}, FrameContext(time=i / 60), node)
        for i, signal in enumerate(signals)
    ]
    triggers = [out["trigger"] for out in outputs]

    assert not any(triggers[:60])
    assert any(triggers[60:])
    assert max(out["difference"] for out in outputs) > 90


def test_adaptive_section_without_signal_returns_zeros() -> None:
    definition = AdaptiveSectionDetectorNode()
    node = NodeInstance("adaptive", definition)

    assert definition.run({}, FrameContext(), node) == {"trigger": 0, "difference": 0.0, "threshold": 0.0}
