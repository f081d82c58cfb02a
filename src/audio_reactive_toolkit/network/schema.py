"""Persisted network schema and structural validation."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from audio_reactive_toolkit.network.definitions import INPUT_LABEL, OUTPUT_LABEL
from audio_reactive_toolkit.network.ports import PortType, types_compatible


class NodeRecord(BaseModel):
    """Persisted node: definition label plus literal input overrides."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    definition_label: str = Field(alias="definitionLabel")
    input_overrides: dict[str, Any] = Field(default_factory=dict, alias="inputOverrides")
    output_type: PortType | None = Field(default=None, alias="outputType")

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("node id cannot be empty")
        return trimmed

    @model_validator(mode="after")
    def _validate_output_type(self) -> "NodeRecord":
        if self.definition_label == OUTPUT_LABEL and self.output_type is None:
            raise ValueError(f"Output node '{self.id}' requires outputType")
        if self.definition_label != OUTPUT_LABEL and self.output_type is not None:
            raise ValueError(f"node '{self.id}' is not an Output node and cannot declare outputType")
        return self


class EdgeRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    source: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target: str
    target_handle: str = Field(alias="targetHandle")


class NetworkRecord(BaseModel):
    """A whole network as stored by a project; never includes node state."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    is_enabled: bool = Field(default=True, alias="isEnabled")
    nodes: list[NodeRecord]
    edges: list[EdgeRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_graph(self, info: ValidationInfo) -> "NetworkRecord":
        errors: list[str] = []
        node_ids = [node.id for node in self.nodes]
        duplicates = sorted({node_id for node_id in node_ids if node_ids.count(node_id) > 1})
        if duplicates:
            errors.append(f"duplicate node ids: {', '.join(duplicates)}")

        outputs = [node.id for node in self.nodes if node.definition_label == OUTPUT_LABEL]
        if len(outputs) != 1:
            errors.append(f"network must have exactly one Output node, found {len(outputs)}")
        inputs = [node.id for node in self.nodes if node.definition_label == INPUT_LABEL]
        if len(inputs) > 1:
            errors.append(f"network has more than one Input node: {', '.join(inputs)}")

        by_id = {node.id: node for node in self.nodes}
        specs = (info.context or {}).get("node_specs", {})

        def ports_of(node: NodeRecord) -> dict[str, dict[str, PortType]] | None:
            if node.definition_label == OUTPUT_LABEL:
                return {"inputs": {"output": PortType(node.output_type)}, "outputs": {}}
            return specs.get(node.definition_label)

        if specs:
            for node in self.nodes:
                if ports_of(node) is None:
                    errors.append(f"node '{node.id}' has unknown definition '{node.definition_label}'")

        fed: set[tuple[str, str]] = set()
        for index, edge in enumerate(self.edges):
            name = f"edges[{index}]"
            if edge.source not in by_id:
                errors.append(f"{name} references missing source node '{edge.source}'")
            if edge.target not in by_id:
                errors.append(f"{name} references missing target node '{edge.target}'")

            key = (edge.target, edge.target_handle)
            if key in fed:
                errors.append(f"{name} is a second edge into {edge.target}.{edge.target_handle}")
            fed.add(key)

            source_node = by_id.get(edge.source)
            target_node = by_id.get(edge.target)
            if not specs or not source_node or not target_node:
                continue
            source_spec = ports_of(source_node)
            target_spec = ports_of(target_node)
            if not source_spec or not target_spec:
                continue

            out_ports = source_spec.get("outputs", {})
            in_ports = target_spec.get("inputs", {})
            if edge.source_handle is None:
                if not out_ports:
                    errors.append(f"{name} source node '{edge.source}' has no outputs")
                    continue
                out_type = next(iter(out_ports.values()))
            elif edge.source_handle not in out_ports:
                errors.append(f"{name} unknown output port '{edge.source_handle}' on node '{edge.source}'")
                continue
            else:
                out_type = out_ports[edge.source_handle]
            if edge.target_handle not in in_ports:
                errors.append(f"{name} unknown input port '{edge.target_handle}' on node '{edge.target}'")
                continue

            in_type = in_ports[edge.target_handle]
            if not types_compatible(out_type, in_type):
                errors.append(
                    f"{name} incompatible types: "
                    f"{edge.source}.{edge.source_handle or '*'}({out_type.value}) -> "
                    f"{edge.target}.{edge.target_handle}({in_type.value})"
                )

        if self._has_cycle():
            errors.append("network contains a cycle")

        if errors:
            raise ValueError("; ".join(errors))
        return self

    def _has_cycle(self) -> bool:
        adjacency: dict[str, set[str]] = defaultdict(set)
        indegree: dict[str, int] = {node.id: 0 for node in self.nodes}

        for edge in self.edges:
            if edge.source in indegree and edge.target in indegree:
                if edge.target not in adjacency[edge.source]:
                    adjacency[edge.source].add(edge.target)
                    indegree[edge.target] += 1

        queue = deque([node_id for node_id, deg in indegree.items() if deg == 0])
        visited = 0
        while queue:
            node_id = queue.popleft()
            visited += 1
            for nxt in adjacency[node_id]:
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    queue.append(nxt)

        return visited != len(indegree)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def validate_network_payload(data: dict[str, Any], *, node_specs: dict[str, Any]) -> NetworkRecord:
    """Validate a raw persisted network against the schema and node port contracts."""

    return NetworkRecord.model_validate(data, context={"node_specs": node_specs})
