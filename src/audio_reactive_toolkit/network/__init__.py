"""Animation networks: ports, node definitions, graphs and evaluation."""

from audio_reactive_toolkit.network.definitions import (
    INPUT_DEFINITION,
    INPUT_LABEL,
    OUTPUT_LABEL,
    NodeDefinition,
    OutputDefinition,
    PortSpec,
)
from audio_reactive_toolkit.network.errors import (
    CycleDetectedError,
    InvalidConnectionError,
    NetworkDisabledError,
    NetworkError,
    OutputNodeMissingError,
    UnknownNodeDefinitionError,
)
from audio_reactive_toolkit.network.evaluator import NetworkEvaluator, evaluate
from audio_reactive_toolkit.network.graph import Edge, Network, NodeInstance, create_network
from audio_reactive_toolkit.network.host import NetworkHost
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY, NodeRegistry, get_definition, node_specs
from audio_reactive_toolkit.network.ports import (
    FrameContext,
    FrequencyAnalysis,
    PortType,
    coerce_value,
    types_compatible,
)
from audio_reactive_toolkit.network.presets import PRESETS, NetworkPreset, instantiate_preset
from audio_reactive_toolkit.network.schema import NetworkRecord, validate_network_payload

__all__ = [
    "CycleDetectedError",
    "Edge",
    "FrameContext",
    "FrequencyAnalysis",
    "INPUT_DEFINITION",
    "INPUT_LABEL",
    "InvalidConnectionError",
    "NODE_REGISTRY",
    "Network",
    "NetworkDisabledError",
    "NetworkError",
    "NetworkEvaluator",
    "NetworkHost",
    "NetworkPreset",
    "NetworkRecord",
    "NodeDefinition",
    "NodeInstance",
    "NodeRegistry",
    "OUTPUT_LABEL",
    "OutputDefinition",
    "OutputNodeMissingError",
    "PRESETS",
    "PortSpec",
    "PortType",
    "UnknownNodeDefinitionError",
    "coerce_value",
    "create_network",
    "evaluate",
    "get_definition",
    "instantiate_preset",
    "node_specs",
    "types_compatible",
    "validate_network_payload",
]
