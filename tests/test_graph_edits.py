import pytest

from audio_reactive_toolkit.network.errors import InvalidConnectionError, UnknownNodeDefinitionError
from audio_reactive_toolkit.network.graph import Network, create_network, input_node_id, output_node_id
from audio_reactive_toolkit.network.ports import PortType


def test_create_network_places_input_and_output() -> None:
    network = create_network("hue", PortType.COLOR)

    assert set(network.nodes) == {"hue-input-node", "hue-output-node"}
    assert network.input_node is network.nodes[input_node_id("hue")]
    assert network.output_node is network.nodes[output_node_id("hue")]
    assert network.output_type is PortType.COLOR
    assert network.edges == []


def test_generated_ids_are_unique_slugs() -> None:
    network = create_network("p")

    first = network.add_node("Math")
    second = network.add_node("Math")
    quantile = network.add_node("Adaptive Normalize (Quantile)")

    assert (first.id, second.id) == ("math-1", "math-2")
    assert quantile.id == "adaptive-normalize-quantile-1"
    assert first.state is not second.state


def test_add_node_rejects_duplicates_and_second_output() -> None:
    network = create_network("p")
    network.add_node("Sine", "osc")

    with pytest.raises(ValueError, match="duplicate node id"):
        network.add_node("Math", "osc")
    with pytest.raises(ValueError, match="already has an Output node"):
        network.add_node("Output", output_type="number")


def test_unknown_label_lists_available_definitions() -> None:
    network = create_network("p")

    with pytest.raises(UnknownNodeDefinitionError, match="Available: .*Envelope Follower") as excinfo:
        network.add_node("Reverb")
    assert isinstance(excinfo.value, KeyError)
    assert excinfo.value.label == "Reverb"


def test_connect_replaces_existing_fan_in() -> None:
    network = create_network("p")
    network.add_node("Math", "m")
    network.add_node("Sine", "osc")

    network.connect("p-input-node", "m", "a", "time")
    network.connect("osc", "m", "a")

    into_a = [edge for edge in network.edges if edge.target == "m" and edge.target_handle == "a"]
    assert len(into_a) == 1
    assert into_a[0].source == "osc"
    assert network.incoming("m", "a") == into_a[0]


def test_connect_checks_port_types() -> None:
    network = create_network("p")
    network.add_node("Math", "m")
    network.add_node("Value Mapper", "vm")

    with pytest.raises(InvalidConnectionError, match="incompatible types"):
        network.connect("vm", "m", "a", "output")
    with pytest.raises(InvalidConnectionError, match="incompatible types"):
        network.connect("p-input-node", "m", "b", "audioSignal")

    edge = network.connect("m", "vm", "default", "result")
    assert edge.source_handle == "result"


def test_connect_rejects_unknown_ports_and_nodes() -> None:
    network = create_network("p")
    network.add_node("Math", "m")

    with pytest.raises(InvalidConnectionError, match="no input 'c'"):
        network.connect("p-input-node", "m", "c", "time")
    with pytest.raises(InvalidConnectionError, match="no output 'tempo'"):
        network.connect("p-input-node", "m", "a", "tempo")
    with pytest.raises(InvalidConnectionError, match="unknown node 'ghost'"):
        network.connect("ghost", "m", "a")
    with pytest.raises(InvalidConnectionError, match="has no outputs"):
        network.connect("p-output-node", "m", "a")
    assert issubclass(InvalidConnectionError, ValueError)


def test_connect_rejects_cycles() -> None:
    network = create_network("p")
    network.add_node("Math", "m1")
    network.add_node("Math", "m2")
    network.add_node("Math", "m3")
    network.connect("m1", "m2", "a")
    network.connect("m2", "m3", "a")

    with pytest.raises(InvalidConnectionError, match="cycle"):
        network.connect("m3", "m1", "a")
    with pytest.raises(InvalidConnectionError, match="cycle"):
        network.connect("m1", "m1", "b")
    assert len(network.edges) == 2


def test_remove_node_drops_its_edges() -> None:
    network = create_network("p")
    network.add_node("Math", "m")
    network.connect("p-input-node", "m", "a", "time")
    network.connect("m", "p-output-node", "output")

    network.remove_node("m")

    assert "m" not in network.nodes
    assert network.edges == []
    with pytest.raises(ValueError, match="cannot be removed"):
        network.remove_node("p-output-node")


def test_disconnect_and_literal_inputs() -> None:
    network = create_network("p")
    network.add_node("Math", "m")
    network.connect("p-input-node", "m", "a", "time")

    removed = network.disconnect("m", "a")
    network.set_input_value("m", "b", 4)

    assert removed is not None and removed.source == "p-input-node"
    assert network.disconnect("m", "a") is None
    assert network.nodes["m"].input_values == {"b": 4}
    with pytest.raises(InvalidConnectionError):
        network.set_input_value("m", "z", 1)


def test_record_round_trip_gives_fresh_state() -> None:
    network = create_network("p")
    node = network.add_node("Envelope Follower", "env", {"attackMs": 5})
    network.connect("env", "p-output-node", "output", "env")
    node.state.prev_env = 42.0
    network.is_enabled = False

    clone = Network.from_record(network.to_record())

    assert clone.to_record() == network.to_record()
    assert clone.is_enabled is False
    assert clone.nodes["env"].state.prev_env is None
    assert clone.nodes["env"].input_values == {"attackMs": 5}
    assert clone.output_type is PortType.NUMBER


def test_reset_state_restores_fresh_state() -> None:
    network = create_network("p")
    node = network.add_node("Threshold Counter", "count")
    node.state.counter = 3

    network.reset_state()

    assert network.nodes["count"].state.counter == 0
