"""Animation network: node instances, edges and edit operations."""

from __future__ import annotations

import copy
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from audio_reactive_toolkit.network.definitions import (
    INPUT_DEFINITION,
    INPUT_LABEL,
    OUTPUT_LABEL,
    NodeDefinition,
    OutputDefinition,
)
from audio_reactive_toolkit.network.errors import InvalidConnectionError
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY, NodeRegistry
from audio_reactive_toolkit.network.ports import PortType, types_compatible

LOGGER = logging.getLogger(__name__)


def input_node_id(parameter_id: str) -> str:
    return f"{parameter_id}-input-node"


def output_node_id(parameter_id: str) -> str:
    return f"{parameter_id}-output-node"


@dataclass
class NodeInstance:
    """A placed node: shared definition, literal overrides, private state."""

    id: str
    definition: NodeDefinition
    input_values: dict[str, Any] = field(default_factory=dict)
    state: Any = None

    def __post_init__(self) -> None:
        if self.state is None:
            self.state = self.definition.new_state()

    @property
    def label(self) -> str:
        return self.definition.label

    @property
    def is_output(self) -> bool:
        return isinstance(self.definition, OutputDefinition)

    @property
    def is_input(self) -> bool:
        return self.definition.label == INPUT_LABEL

    def reset_state(self) -> None:
        self.state = self.definition.new_state()

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "definitionLabel": self.label,
            "inputOverrides": _plain(self.input_values),
        }
        if isinstance(self.definition, OutputDefinition):
            record["outputType"] = self.definition.port_type.value
        return record


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    target_handle: str
    source_handle: str | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {"source": self.source, "target": self.target, "targetHandle": self.target_handle}
        if self.source_handle is not None:
            record["sourceHandle"] = self.source_handle
        return record


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    """Deep copy of overrides with numpy values turned into JSON-ready types."""

    out: dict[str, Any] = {}
    for key, value in values.items():
        if hasattr(value, "tolist"):
            out[key] = value.tolist()
        elif isinstance(value, PortType):
            out[key] = value.value
        else:
            out[key] = copy.deepcopy(value)
    return out


@dataclass
class Network:
    """A single parameter's dataflow graph.

    Edits keep the graph valid: at most one edge per target input, only
    compatible port types, no cycles, exactly one Output node.
    """

    id: str
    nodes: dict[str, NodeInstance] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    is_enabled: bool = True
    registry: NodeRegistry = field(default=NODE_REGISTRY, repr=False, compare=False)

    @property
    def output_node(self) -> NodeInstance | None:
        return next((node for node in self.nodes.values() if node.is_output), None)

    @property
    def input_node(self) -> NodeInstance | None:
        return next((node for node in self.nodes.values() if node.is_input), None)

    @property
    def output_type(self) -> PortType | None:
        node = self.output_node
        return node.definition.port_type if node is not None else None

    def _resolve_definition(
        self, definition: NodeDefinition | str, output_type: PortType | str | None
    ) -> NodeDefinition:
        if isinstance(definition, NodeDefinition):
            return definition
        return self.registry.get(definition, output_type)

    def _next_id(self, label: str) -> str:
        stem = re.sub(r"[^a-z0-9]+", "-", label.lower()).strip("-") or "node"
        index = 1
        while f"{stem}-{index}" in self.nodes:
            index += 1
        return f"{stem}-{index}"

    def add_node(
        self,
        definition: NodeDefinition | str,
        node_id: str | None = None,
        input_values: dict[str, Any] | None = None,
        *,
        output_type: PortType | str | None = None,
    ) -> NodeInstance:
        resolved = self._resolve_definition(definition, output_type)
        if isinstance(resolved, OutputDefinition) and self.output_node is not None:
            raise ValueError(f"network '{self.id}' already has an Output node")
        node_id = node_id or self._next_id(resolved.label)
        if node_id in self.nodes:
            raise ValueError(f"duplicate node id '{node_id}' in network '{self.id}'")

        node = NodeInstance(node_id, resolved, dict(input_values or {}))
        self.nodes[node_id] = node
        LOGGER.debug("network %s: added %s node %s", self.id, resolved.label, node_id)
        return node

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it. The Output node is permanent."""

        node = self._node(node_id)
        if node.is_output:
            raise ValueError("the Output node cannot be removed")
        del self.nodes[node_id]
        self.edges = [edge for edge in self.edges if node_id not in (edge.source, edge.target)]
        LOGGER.debug("network %s: removed node %s", self.id, node_id)

    def _node(self, node_id: str) -> NodeInstance:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise InvalidConnectionError(f"unknown node '{node_id}' in network '{self.id}'") from None

    def incoming(self, node_id: str, handle: str) -> Edge | None:
        return next(
            (edge for edge in self.edges if edge.target == node_id and edge.target_handle == handle),
            None,
        )

    def upstream_ids(self, node_id: str) -> set[str]:
        """Every node the given node transitively reads from."""

        parents: dict[str, list[str]] = defaultdict(list)
        for edge in self.edges:
            parents[edge.target].append(edge.source)
        seen: set[str] = set()
        stack = list(parents[node_id])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(parents[current])
        return seen

    def connect(
        self,
        source: str,
        target: str,
        target_handle: str,
        source_handle: str | None = None,
    ) -> Edge:
        """Add an edge, replacing any edge already feeding ``target_handle``."""

        source_node = self._node(source)
        target_node = self._node(target)
        in_port = target_node.definition.input_port(target_handle)
        if in_port is None:
            raise InvalidConnectionError(f"node '{target}' has no input '{target_handle}'")

        if source_handle is None:
            if not source_node.definition.outputs:
                raise InvalidConnectionError(f"node '{source}' has no outputs")
            out_port = source_node.definition.outputs[0]
        else:
            out_port = source_node.definition.output_port(source_handle)
            if out_port is None:
                raise InvalidConnectionError(f"node '{source}' has no output '{source_handle}'")

        if not types_compatible(out_port.type, in_port.type):
            raise InvalidConnectionError(
                f"incompatible types: {source}.{out_port.id}({out_port.type.value}) -> "
                f"{target}.{in_port.id}({in_port.type.value})"
            )
        if source == target or target in self.upstream_ids(source):
            raise InvalidConnectionError(f"connecting {source} -> {target} would create a cycle")

        edge = Edge(source, target, target_handle, source_handle)
        self.edges = [
            existing
            for existing in self.edges
            if not (existing.target == target and existing.target_handle == target_handle)
        ]
        self.edges.append(edge)
        LOGGER.debug("network %s: connected %s -> %s.%s", self.id, source, target, target_handle)
        return edge

    def disconnect(self, target: str, target_handle: str) -> Edge | None:
        edge = self.incoming(target, target_handle)
        if edge is not None:
            self.edges.remove(edge)
        return edge

    def set_input_value(self, node_id: str, port_id: str, value: Any) -> None:
        node = self._node(node_id)
        if node.definition.input_port(port_id) is None:
            raise InvalidConnectionError(f"node '{node_id}' has no input '{port_id}'")
        node.input_values[port_id] = value

    def reset_state(self) -> None:
        for node in self.nodes.values():
            node.reset_state()

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "isEnabled": self.is_enabled,
            "nodes": [node.to_record() for node in self.nodes.values()],
            "edges": [edge.to_record() for edge in self.edges],
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], registry: NodeRegistry = NODE_REGISTRY) -> Network:
        """Build a network from an already validated record with fresh state."""

        network = cls(id=record["id"], is_enabled=record.get("isEnabled", True), registry=registry)
        for node in record.get("nodes", []):
            definition = registry.get(node["definitionLabel"], node.get("outputType"))
            network.nodes[node["id"]] = NodeInstance(
                node["id"], definition, copy.deepcopy(node.get("inputOverrides") or {})
            )
        for edge in record.get("edges", []):
            network.edges.append(
                Edge(edge["source"], edge["target"], edge["targetHandle"], edge.get("sourceHandle"))
            )
        return network


def create_network(
    parameter_id: str,
    output_type: PortType | str = PortType.NUMBER,
    *,
    registry: NodeRegistry = NODE_REGISTRY,
) -> Network:
    """Bare ``Input`` + ``Output`` network for a newly animated parameter."""

    network = Network(id=parameter_id, registry=registry)
    network.add_node(INPUT_DEFINITION, input_node_id(parameter_id))
    network.add_node(OUTPUT_LABEL, output_node_id(parameter_id), output_type=output_type)
    return network
