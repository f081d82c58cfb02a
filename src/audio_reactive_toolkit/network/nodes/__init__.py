"""Built-in node definitions and the label-keyed registry."""

from __future__ import annotations

from audio_reactive_toolkit.network.definitions import (
    INPUT_DEFINITION,
    OUTPUT_LABEL,
    NodeDefinition,
    OutputDefinition,
    PortDecl,
)
from audio_reactive_toolkit.network.errors import UnknownNodeDefinitionError
from audio_reactive_toolkit.network.nodes.basic import (
    HSLColorNode,
    MathNode,
    NormalizeNode,
    RGBColorNode,
    SineNode,
    ValueMapperNode,
)
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
from audio_reactive_toolkit.network.nodes.pitch import PitchDetectionNode
from audio_reactive_toolkit.network.nodes.sections import (
    AdaptiveSectionDetectorNode,
    SectionChangeDetectorNode,
)
from audio_reactive_toolkit.network.nodes.spectral import (
    AverageVolumeNode,
    BandInfoNode,
    FrequencyBandNode,
    HarmonicPresenceNode,
    MultiBandAnalysisNode,
    SpectralCentroidNode,
    SpectralFluxNode,
    TonalPresenceNode,
)
from audio_reactive_toolkit.network.ports import PortType


class NodeRegistry:
    """Registry of shared node definitions keyed by label.

    ``Output`` is not stored: one definition exists per port type and is
    built on request.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, NodeDefinition] = {}

    def register(self, definition: NodeDefinition) -> None:
        if not definition.label:
            raise ValueError(f"{definition!r} has no label")
        if definition.label == OUTPUT_LABEL:
            raise ValueError("Output definitions are created per output type")
        self._definitions[definition.label] = definition

    def list_labels(self) -> list[str]:
        return sorted([*self._definitions, OUTPUT_LABEL])

    def get(self, label: str, output_type: PortType | str | None = None) -> NodeDefinition:
        if label == OUTPUT_LABEL:
            return OutputDefinition(PortType(output_type or PortType.NUMBER))
        if label not in self._definitions:
            raise UnknownNodeDefinitionError(label, self.list_labels())
        return self._definitions[label]

    def __contains__(self, label: object) -> bool:
        return label == OUTPUT_LABEL or label in self._definitions

    def node_specs(self, output_type: PortType | str = PortType.NUMBER) -> dict[str, PortDecl]:
        """Port declarations per label, the context schema validation runs with."""

        specs = {label: definition.declare_ports() for label, definition in self._definitions.items()}
        specs[OUTPUT_LABEL] = OutputDefinition(PortType(output_type)).declare_ports()
        return specs


BUILTIN_DEFINITIONS: tuple[NodeDefinition, ...] = (
    INPUT_DEFINITION,
    SineNode(),
    MathNode(),
    NormalizeNode(),
    ValueMapperNode(),
    HSLColorNode(),
    RGBColorNode(),
    FrequencyBandNode(),
    BandInfoNode(),
    AverageVolumeNode(),
    SpectralFluxNode(),
    SpectralCentroidNode(),
    MultiBandAnalysisNode(),
    TonalPresenceNode(),
    HarmonicPresenceNode(),
    PitchDetectionNode(),
    EnvelopeFollowerNode(),
    AdaptiveNormalizeQuantileNode(),
    HysteresisGateNode(),
    ThresholdCounterNode(),
    RateLimiterNode(),
    RefractoryGateNode(),
    SpikeNode(),
    DuckerNode(),
    SectionChangeDetectorNode(),
    AdaptiveSectionDetectorNode(),
)


def build_default_registry() -> NodeRegistry:
    registry = NodeRegistry()
    for definition in BUILTIN_DEFINITIONS:
        registry.register(definition)
    return registry


NODE_REGISTRY = build_default_registry()


def get_definition(label: str, output_type: PortType | str | None = None) -> NodeDefinition:
    return NODE_REGISTRY.get(label, output_type)


def node_specs(output_type: PortType | str = PortType.NUMBER) -> dict[str, PortDecl]:
    return NODE_REGISTRY.node_specs(output_type)


__all__ = [
    "BUILTIN_DEFINITIONS",
    "NODE_REGISTRY",
    "NodeRegistry",
    "build_default_registry",
    "get_definition",
    "node_specs",
]
