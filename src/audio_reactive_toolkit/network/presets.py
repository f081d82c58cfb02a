"""Ready-made networks, grouped by the output type they drive."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from audio_reactive_toolkit.network.definitions import INPUT_DEFINITION, OUTPUT_LABEL
from audio_reactive_toolkit.network.graph import Network, input_node_id, output_node_id
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY, NodeRegistry
from audio_reactive_toolkit.network.ports import PortType

LOGGER = logging.getLogger(__name__)

# Preset edges name the network's I/O nodes with these aliases.
INPUT_ALIAS = "INPUT"
OUTPUT_ALIAS = "OUTPUT"


class PresetNode(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    label: str
    input_values: dict[str, Any] = Field(default_factory=dict, alias="inputValues")


class PresetEdge(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target: str
    target_handle: str = Field(alias="targetHandle")


class NetworkPreset(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    name: str
    description: str = ""
    output_type: PortType = Field(alias="outputType")
    nodes: list[PresetNode] = Field(default_factory=list)
    edges: list[PresetEdge] = Field(default_factory=list)


class PresetRegistry:
    """Presets keyed by id and grouped by output type."""

    def __init__(self) -> None:
        self._presets: dict[str, NetworkPreset] = {}
        self._by_type: dict[PortType, list[str]] = defaultdict(list)

    def register(self, preset: NetworkPreset | dict[str, Any]) -> NetworkPreset:
        if not isinstance(preset, NetworkPreset):
            preset = NetworkPreset.model_validate(preset)
        if preset.id in self._presets:
            raise ValueError(f"preset '{preset.id}' is already registered")
        self._presets[preset.id] = preset
        self._by_type[preset.output_type].append(preset.id)
        return preset

    def get(self, preset_id: str) -> NetworkPreset:
        if preset_id not in self._presets:
            available = ", ".join(sorted(self._presets))
            raise KeyError(f"Unknown preset '{preset_id}'. Available: {available}")
        return self._presets[preset_id]

    def for_type(self, output_type: PortType | str) -> list[NetworkPreset]:
        return [self._presets[preset_id] for preset_id in self._by_type.get(PortType(output_type), [])]

    def list_presets(self) -> list[NetworkPreset]:
        return list(self._presets.values())


def preset_node_id(parameter_id: str, index: int, spec_id: str) -> str:
    return f"{parameter_id}-preset-{index}-{spec_id}"


def instantiate_preset(
    preset: NetworkPreset,
    parameter_id: str,
    output_type: PortType | str | None = None,
    *,
    registry: NodeRegistry = NODE_REGISTRY,
) -> Network:
    """Build a fresh network for ``parameter_id`` from ``preset``.

    Preset node ids are namespaced per parameter so several parameters can
    share one preset. Every edge goes through ``Network.connect`` and is
    type-checked against ``output_type`` (the preset's own type by default).
    """

    actual_type = PortType(output_type or preset.output_type)
    network = Network(id=parameter_id, registry=registry)
    network.add_node(INPUT_DEFINITION, input_node_id(parameter_id))

    id_map = {INPUT_ALIAS: input_node_id(parameter_id), OUTPUT_ALIAS: output_node_id(parameter_id)}
    for index, spec in enumerate(preset.nodes):
        node_id = preset_node_id(parameter_id, index, spec.id)
        id_map[spec.id] = node_id
        network.add_node(registry.get(spec.label), node_id, spec.input_values)

    network.add_node(OUTPUT_LABEL, output_node_id(parameter_id), output_type=actual_type)

    for edge in preset.edges:
        network.connect(
            id_map.get(edge.source, edge.source),
            id_map.get(edge.target, edge.target),
            edge.target_handle,
            edge.source_handle,
        )
    LOGGER.debug("instantiated preset %s for %s", preset.id, parameter_id)
    return network


BUILTIN_PRESETS: list[dict[str, Any]] = [
    {
        "id": "number-sine-osc",
        "name": "Sine Oscillator (time)",
        "description": "Input.time -> Sine -> Output",
        "outputType": "number",
        "nodes": [{"id": "sine", "label": "Sine", "inputValues": {"frequency": 1, "phase": 0, "amplitude": 1}}],
        "edges": [
            {"source": INPUT_ALIAS, "sourceHandle": "time", "target": "sine", "targetHandle": "time"},
            {"source": "sine", "sourceHandle": "value", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
    {
        "id": "number-average-volume",
        "name": "Average Volume -> Normalize",
        "description": "Input.audioSignal -> Average Volume -> Normalize(0..1) -> Output",
        "outputType": "number",
        "nodes": [
            {"id": "avg", "label": "Average Volume"},
            {
                "id": "norm",
                "label": "Normalize",
                "inputValues": {"inputMin": 0, "inputMax": 255, "outputMin": 0, "outputMax": 1},
            },
        ],
        "edges": [
            {"source": INPUT_ALIAS, "sourceHandle": "audioSignal", "target": "avg", "targetHandle": "data"},
            {"source": "avg", "sourceHandle": "average", "target": "norm", "targetHandle": "value"},
            {"source": "norm", "sourceHandle": "result", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
    {
        "id": "number-kick-band-smoothed",
        "name": "Kick Band (40-120Hz) -> Avg -> Normalize -> Envelope",
        "description": (
            "Input.frequencyAnalysis -> Frequency Band (40-120Hz) -> Average -> "
            "Normalize(30..200 -> 0..4) -> Envelope Follower -> Output"
        ),
        "outputType": "number",
        "nodes": [
            {"id": "band", "label": "Frequency Band", "inputValues": {"startFrequency": 40, "endFrequency": 120}},
            {"id": "avg", "label": "Average Volume"},
            {
                "id": "norm",
                "label": "Normalize",
                "inputValues": {"inputMin": 30, "inputMax": 200, "outputMin": 0, "outputMax": 4},
            },
            {"id": "env", "label": "Envelope Follower", "inputValues": {"attackMs": 5, "releaseMs": 120}},
        ],
        "edges": [
            {
                "source": INPUT_ALIAS,
                "sourceHandle": "frequencyAnalysis",
                "target": "band",
                "targetHandle": "frequencyAnalysis",
            },
            {"source": "band", "sourceHandle": "bandData", "target": "avg", "targetHandle": "data"},
            {"source": "avg", "sourceHandle": "average", "target": "norm", "targetHandle": "value"},
            {"source": "norm", "sourceHandle": "result", "target": "env", "targetHandle": "value"},
            {"source": "env", "sourceHandle": "env", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
    {
        "id": "number-kick-gate",
        "name": "Kick Gate (Band -> Avg -> Env -> Adaptive Normalize -> Gate)",
        "description": (
            "Frequency Band (80-150Hz) -> Average Volume -> Envelope Follower -> "
            "Adaptive Normalize (Quantile) -> Hysteresis Gate -> Output (0/1)"
        ),
        "outputType": "number",
        "nodes": [
            {"id": "band", "label": "Frequency Band", "inputValues": {"startFrequency": 80, "endFrequency": 150}},
            {"id": "avg", "label": "Average Volume"},
            {"id": "env", "label": "Envelope Follower", "inputValues": {"attackMs": 6, "releaseMs": 120}},
            {
                "id": "adapt",
                "label": "Adaptive Normalize (Quantile)",
                "inputValues": {"windowMs": 4000, "qLow": 0.5, "qHigh": 0.98},
            },
            {"id": "gate", "label": "Hysteresis Gate", "inputValues": {"low": 0.33, "high": 0.45}},
        ],
        "edges": [
            {
                "source": INPUT_ALIAS,
                "sourceHandle": "frequencyAnalysis",
                "target": "band",
                "targetHandle": "frequencyAnalysis",
            },
            {"source": "band", "sourceHandle": "bandData", "target": "avg", "targetHandle": "data"},
            {"source": "avg", "sourceHandle": "average", "target": "env", "targetHandle": "value"},
            {"source": "env", "sourceHandle": "env", "target": "adapt", "targetHandle": "value"},
            {"source": "adapt", "sourceHandle": "result", "target": "gate", "targetHandle": "value"},
            {"source": "gate", "sourceHandle": "state", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
    {
        "id": "number-section-mode",
        "name": "Section Mode Cycler",
        "description": (
            "Spectral Flux -> Section Change Detector -> Threshold Counter -> Output; "
            "steps through 4 modes on big changes"
        ),
        "outputType": "number",
        "nodes": [
            {"id": "flux", "label": "Spectral Flux", "inputValues": {"smoothMs": 80}},
            {
                "id": "section",
                "label": "Section Change Detector",
                "inputValues": {"threshold": 4, "cooldownMs": 2000, "holdMs": 100},
            },
            {"id": "counter", "label": "Threshold Counter", "inputValues": {"threshold": 0.5, "maxValue": 4}},
        ],
        "edges": [
            {
                "source": INPUT_ALIAS,
                "sourceHandle": "frequencyAnalysis",
                "target": "flux",
                "targetHandle": "frequencyAnalysis",
            },
            {"source": "flux", "sourceHandle": "flux", "target": "section", "targetHandle": "flux"},
            {"source": "section", "sourceHandle": "trigger", "target": "counter", "targetHandle": "value"},
            {"source": "counter", "sourceHandle": "count", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
    {
        "id": "string-pitch-note",
        "name": "Pitch Note Name",
        "description": "Input.audioSignal -> Pitch Detection -> Output (note name such as A4)",
        "outputType": "string",
        "nodes": [{"id": "pitch", "label": "Pitch Detection"}],
        "edges": [
            {"source": INPUT_ALIAS, "sourceHandle": "audioSignal", "target": "pitch", "targetHandle": "audioSignal"},
            {"source": "pitch", "sourceHandle": "note", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
    {
        "id": "color-band-hue",
        "name": "Bass Level Hue",
        "description": "Frequency Band (20-250Hz) -> Band Info average -> Normalize(0..360) -> HSL Color -> Output",
        "outputType": "color",
        "nodes": [
            {"id": "band", "label": "Frequency Band", "inputValues": {"startFrequency": 20, "endFrequency": 250}},
            {"id": "info", "label": "Band Info"},
            {
                "id": "hue",
                "label": "Normalize",
                "inputValues": {"inputMin": 0, "inputMax": 255, "outputMin": 0, "outputMax": 360},
            },
            {"id": "color", "label": "HSL Color", "inputValues": {"s": 90, "l": 55}},
        ],
        "edges": [
            {
                "source": INPUT_ALIAS,
                "sourceHandle": "frequencyAnalysis",
                "target": "band",
                "targetHandle": "frequencyAnalysis",
            },
            {"source": "band", "sourceHandle": "bandData", "target": "info", "targetHandle": "data"},
            {"source": "info", "sourceHandle": "average", "target": "hue", "targetHandle": "value"},
            {"source": "hue", "sourceHandle": "result", "target": "color", "targetHandle": "h"},
            {"source": "color", "sourceHandle": "color", "target": OUTPUT_ALIAS, "targetHandle": "output"},
        ],
    },
]


def build_default_presets() -> PresetRegistry:
    registry = PresetRegistry()
    for preset in BUILTIN_PRESETS:
        registry.register(preset)
    return registry


PRESETS = build_default_presets()
