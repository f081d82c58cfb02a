"""Owns the networks of every animated parameter and evaluates them per frame."""

from __future__ import annotations

import logging
from typing import Any

from audio_reactive_toolkit.network.errors import NetworkError
from audio_reactive_toolkit.network.evaluator import NetworkEvaluator
from audio_reactive_toolkit.network.graph import Network, create_network
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY, NodeRegistry
from audio_reactive_toolkit.network.ports import FrameContext, PortType
from audio_reactive_toolkit.network.presets import PRESETS, PresetRegistry, instantiate_preset
from audio_reactive_toolkit.network.schema import validate_network_payload

LOGGER = logging.getLogger(__name__)


class NetworkHost:
    """Networks keyed by parameter id, one evaluator each.

    A network is created when a parameter becomes animated and removed when
    it stops being animated. ``evaluate_all`` skips disabled networks.
    """

    def __init__(
        self,
        registry: NodeRegistry = NODE_REGISTRY,
        presets: PresetRegistry = PRESETS,
    ) -> None:
        self.registry = registry
        self.presets = presets
        self._networks: dict[str, Network] = {}
        self._evaluators: dict[str, NetworkEvaluator] = {}

    def __contains__(self, parameter_id: object) -> bool:
        return parameter_id in self._networks

    def __len__(self) -> int:
        return len(self._networks)

    def parameter_ids(self) -> list[str]:
        return list(self._networks)

    def _install(self, network: Network) -> Network:
        self._networks[network.id] = network
        self._evaluators[network.id] = NetworkEvaluator()
        return network

    def create_network(self, parameter_id: str, output_type: PortType | str = PortType.NUMBER) -> Network:
        if parameter_id in self._networks:
            raise ValueError(f"parameter '{parameter_id}' already has a network")
        LOGGER.info("created %s network for %s", PortType(output_type).value, parameter_id)
        return self._install(create_network(parameter_id, output_type, registry=self.registry))

    def apply_preset(
        self, parameter_id: str, preset_id: str, output_type: PortType | str | None = None
    ) -> Network:
        """Replace (or create) the parameter's network from a preset."""

        preset = self.presets.get(preset_id)
        network = instantiate_preset(preset, parameter_id, output_type, registry=self.registry)
        previous = self._networks.get(parameter_id)
        if previous is not None:
            network.is_enabled = previous.is_enabled
        LOGGER.info("applied preset %s to %s", preset_id, parameter_id)
        return self._install(network)

    def remove_network(self, parameter_id: str) -> None:
        self._networks.pop(parameter_id, None)
        self._evaluators.pop(parameter_id, None)
        LOGGER.info("removed network for %s", parameter_id)

    def get(self, parameter_id: str) -> Network:
        if parameter_id not in self._networks:
            raise KeyError(f"no network for parameter '{parameter_id}'")
        return self._networks[parameter_id]

    def evaluator(self, parameter_id: str) -> NetworkEvaluator:
        self.get(parameter_id)
        return self._evaluators[parameter_id]

    def set_enabled(self, parameter_id: str, enabled: bool) -> None:
        self.get(parameter_id).is_enabled = enabled

    def evaluate(self, parameter_id: str, frame: FrameContext) -> Any:
        network = self.get(parameter_id)
        return self._evaluators[parameter_id].evaluate(network, frame)

    def evaluate_all(self, frame: FrameContext) -> dict[str, Any]:
        """Values of every enabled network; a failing network is logged and skipped."""

        values: dict[str, Any] = {}
        for parameter_id, network in self._networks.items():
            if not network.is_enabled:
                continue
            try:
                values[parameter_id] = self._evaluators[parameter_id].evaluate(network, frame)
            except NetworkError as exc:
                LOGGER.error("network %s failed: %s", parameter_id, exc)
        return values

    def dump(self) -> list[dict[str, Any]]:
        return [network.to_record() for network in self._networks.values()]

    def load(self, records: list[dict[str, Any]]) -> None:
        """Replace all networks with validated records; node state starts fresh."""

        specs = self.registry.node_specs()
        validated = [validate_network_payload(record, node_specs=specs).to_payload() for record in records]
        self._networks.clear()
        self._evaluators.clear()
        for record in validated:
            self._install(Network.from_record(record, registry=self.registry))
        LOGGER.info("loaded %d networks", len(validated))
