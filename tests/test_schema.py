from typing import Any

import pytest
from pydantic import ValidationError

from audio_reactive_toolkit.network.graph import create_network
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY
from audio_reactive_toolkit.network.schema import NetworkRecord, validate_network_payload

SPECS = NODE_REGISTRY.node_specs()


def _payload(nodes: list[dict[str, Any]], edges: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {"id": "intensity", "nodes": nodes, "edges": edges or []}


def _output(node_id: str = "out", output_type: str = "number") -> dict[str, Any]:
    return {"id": node_id, "definitionLabel": "Output", "outputType": output_type}


def test_created_network_round_trips_through_schema() -> None:
    network = create_network("intensity")
    network.add_node("Math", "m")
    network.connect("intensity-input-node", "m", "a", "time")
    network.connect("m", "intensity-output-node", "output")

    record = validate_network_payload(network.to_record(), node_specs=SPECS)

    assert isinstance(record, NetworkRecord)
    assert record.to_payload() == network.to_record()


def test_output_node_needs_output_type() -> None:
    with pytest.raises(ValidationError, match="requires outputType"):
        validate_network_payload(_payload([{"id": "out", "definitionLabel": "Output"}]), node_specs=SPECS)

    with pytest.raises(ValidationError, match="cannot declare outputType"):
        validate_network_payload(
            _payload([_output(), {"id": "m", "definitionLabel": "Math", "outputType": "number"}]),
            node_specs=SPECS,
        )


def test_exactly_one_output_and_at_most_one_input() -> None:
    with pytest.raises(ValidationError, match="exactly one Output node, found 2"):
        validate_network_payload(_payload([_output("a"), _output("b")]), node_specs=SPECS)

    with pytest.raises(ValidationError, match="exactly one Output node, found 0"):
        validate_network_payload(_payload([{"id": "m", "definitionLabel": "Math"}]), node_specs=SPECS)

    with pytest.raises(ValidationError, match="more than one Input node"):
        validate_network_payload(
            _payload([_output(), {"id": "i1", "definitionLabel": "Input"}, {"id": "i2", "definitionLabel": "Input"}]),
            node_specs=SPECS,
        )


def test_rejects_duplicate_ids_and_unknown_definitions() -> None:
    with pytest.raises(ValidationError, match="duplicate node ids: m"):
        validate_network_payload(
            _payload([_output(), {"id": "m", "definitionLabel": "Math"}, {"id": "m", "definitionLabel": "Sine"}]),
            node_specs=SPECS,
        )

    with pytest.raises(ValidationError, match="unknown definition 'Reverb'"):
        validate_network_payload(_payload([_output(), {"id": "r", "definitionLabel": "Reverb"}]), node_specs=SPECS)


def test_rejects_bad_edges() -> None:
    nodes = [_output(), {"id": "m", "definitionLabel": "Math"}, {"id": "vm", "definitionLabel": "Value Mapper"}]

    with pytest.raises(ValidationError, match="missing source node 'ghost'"):
        validate_network_payload(
            _payload(nodes, [{"source": "ghost", "target": "out", "targetHandle": "output"}]), node_specs=SPECS
        )
    with pytest.raises(ValidationError, match="unknown input port 'c'"):
        validate_network_payload(_payload(nodes, [{"source": "m", "target": "m", "targetHandle": "c"}]), node_specs=SPECS)
    with pytest.raises(ValidationError, match="unknown output port 'nope'"):
        validate_network_payload(
            _payload(nodes, [{"source": "m", "sourceHandle": "nope", "target": "out", "targetHandle": "output"}]),
            node_specs=SPECS,
        )
    with pytest.raises(ValidationError, match="incompatible types"):
        validate_network_payload(
            _payload(nodes, [{"source": "vm", "sourceHandle": "output", "target": "m", "targetHandle": "a"}]),
            node_specs=SPECS,
        )


def test_rejects_fan_in_and_cycles() -> None:
    nodes = [
        _output(),
        {"id": "m1", "definitionLabel": "Math"},
        {"id": "m2", "definitionLabel": "Math"},
    ]
    fan_in = [
        {"source": "m1", "target": "out", "targetHandle": "output"},
        {"source": "m2", "target": "out", "targetHandle": "output"},
    ]
    cycle = [
        {"source": "m1", "target": "m2", "targetHandle": "a"},
        {"source": "m2", "target": "m1", "targetHandle": "a"},
    ]

    with pytest.raises(ValidationError, match="second edge into out.output"):
        validate_network_payload(_payload(nodes, fan_in), node_specs=SPECS)
    with pytest.raises(ValidationError, match="cycle"):
        validate_network_payload(_payload(nodes, cycle), node_specs=SPECS)


def test_number_may_feed_string_output() -> None:
    payload = _payload(
        [_output(output_type="string"), {"id": "m", "definitionLabel": "Math"}],
        [{"source": "m", "target": "out", "targetHandle": "output"}],
    )

    record = validate_network_payload(payload, node_specs=SPECS)

    assert record.nodes[0].output_type == "string"


def test_unknown_fields_are_rejected() -> None:
    payload = _payload([_output()])
    payload["state"] = {}

    with pytest.raises(ValidationError):
        validate_network_payload(payload, node_specs=SPECS)


def test_structure_checks_run_without_node_specs() -> None:
    payload = _payload(
        [_output(), {"id": "anything", "definitionLabel": "Not Registered"}],
        [{"source": "anything", "target": "out", "targetHandle": "output"}],
    )

    assert validate_network_payload(payload, node_specs={}).is_enabled is True
