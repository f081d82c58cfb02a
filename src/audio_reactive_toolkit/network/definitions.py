"""Node definition contract shared by every node in a network."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from audio_reactive_toolkit.network.ports import (
    FrameContext,
    PortType,
    coerce_value,
    default_for_type,
)

if TYPE_CHECKING:
    from audio_reactive_toolkit.network.graph import NodeInstance

PortDecl = dict[str, dict[str, PortType]]

INPUT_LABEL = "Input"
OUTPUT_LABEL = "Output"


@dataclass(frozen=True)
class PortSpec:
    """Typed input or output slot on a node definition."""

    id: str
    label: str
    type: PortType
    default: Any = None

    def default_value(self) -> Any:
        if self.default is None:
            return default_for_type(self.type)
        return copy.deepcopy(self.default)


@dataclass
class EmptyState:
    """State for definitions that keep no history between frames."""


@dataclass
class TimedState:
    prev_time: float | None = None


def step_time(state: TimedState, t: float) -> float:
    """Elapsed seconds since the node's previous frame; records ``t``."""

    if not math.isfinite(t):
        t = 0.0
    prev = state.prev_time if state.prev_time is not None else t
    state.prev_time = t
    return max(0.0, t - prev)


def one_pole_alpha(dt: float, tau_ms: float) -> float:
    """Time-correct one-pole smoothing coefficient for a time constant in ms."""

    return 1.0 - math.exp(-dt / (max(1.0, tau_ms) / 1000.0))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class NodeDefinition:
    """Immutable template: label, typed ports, and a compute function.

    One instance is shared by every node placed in every network, so
    ``compute`` must keep all per-node memory in ``node.state``, an instance
    of ``State`` created when the node is placed or loaded.
    """

    label: str = ""
    description: str = ""
    inputs: tuple[PortSpec, ...] = ()
    outputs: tuple[PortSpec, ...] = ()
    State: type = EmptyState

    def new_state(self) -> Any:
        return self.State()

    def compute(
        self,
        inputs: dict[str, Any],
        frame: FrameContext,
        node: NodeInstance | None = None,
    ) -> dict[str, Any]:
        return {}

    def prepare_inputs(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Fill missing inputs from port defaults and coerce to port types."""

        return {
            port.id: coerce_value(raw.get(port.id), port.type, port.default)
            for port in self.inputs
        }

    def run(
        self,
        inputs: dict[str, Any],
        frame: FrameContext,
        node: NodeInstance | None = None,
    ) -> dict[str, Any]:
        return self.compute(self.prepare_inputs(inputs), frame, node)

    def default_outputs(self) -> dict[str, Any]:
        return {port.id: default_for_type(port.type) for port in self.outputs}

    def input_port(self, port_id: str) -> PortSpec | None:
        return next((port for port in self.inputs if port.id == port_id), None)

    def output_port(self, port_id: str) -> PortSpec | None:
        return next((port for port in self.outputs if port.id == port_id), None)

    def declare_ports(self) -> PortDecl:
        return {
            "inputs": {port.id: port.type for port in self.inputs},
            "outputs": {port.id: port.type for port in self.outputs},
        }

    def describe(self) -> dict[str, Any]:
        def _port(port: PortSpec) -> dict[str, Any]:
            payload: dict[str, Any] = {"id": port.id, "label": port.label, "type": port.type.value}
            if port.default is not None:
                payload["default"] = port.default
            return payload

        return {
            "label": self.label,
            "description": self.description,
            "inputs": [_port(port) for port in self.inputs],
            "outputs": [_port(port) for port in self.outputs],
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(label={self.label!r})"


class InputDefinition(NodeDefinition):
    label = INPUT_LABEL
    description = (
        "Graph inputs: audioSignal (waveform bytes), frequencyAnalysis "
        "(spectrum + metadata), and time (seconds). Start connections here."
    )
    outputs = (
        PortSpec("audioSignal", "Audio Signal", PortType.BYTE_BUFFER),
        PortSpec("frequencyAnalysis", "Frequency Analysis", PortType.FREQUENCY_ANALYSIS),
        PortSpec("time", "Time", PortType.NUMBER),
    )

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del inputs, node
        return frame.as_outputs()


class OutputDefinition(NodeDefinition):
    """Network sink; its port type is the network's declared output type."""

    label = OUTPUT_LABEL
    description = (
        "Graph output: pass the final value to this node's input. "
        "Its type defines the network's output type."
    )

    def __init__(self, port_type: PortType) -> None:
        self.port_type = PortType(port_type)
        self.inputs = (PortSpec("output", "Output Value", self.port_type),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        return {"output": inputs.get("output")}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, OutputDefinition) and other.port_type == self.port_type

    def __hash__(self) -> int:
        return hash((OUTPUT_LABEL, self.port_type))

    def __repr__(self) -> str:
        return f"OutputDefinition(port_type={self.port_type.value!r})"


INPUT_DEFINITION = InputDefinition()
