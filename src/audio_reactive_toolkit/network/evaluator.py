"""Per-frame evaluation of a network's Output value."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from audio_reactive_toolkit.network.errors import (
    CycleDetectedError,
    NetworkDisabledError,
    OutputNodeMissingError,
)
from audio_reactive_toolkit.network.graph import Network, NodeInstance
from audio_reactive_toolkit.network.ports import FrameContext

LOGGER = logging.getLogger(__name__)

# Unconnected ports with these ids read the frame before falling back to defaults.
FRAME_PORTS = {"audioSignal": "audio_signal", "frequencyAnalysis": "frequency_analysis"}

DATA_ERRORS = (ArithmeticError, ValueError, TypeError, IndexError, KeyError)


class NetworkEvaluator:
    """Evaluates networks, remembering the last call's per-node values.

    ``latest_outputs``/``latest_inputs`` hold what each node produced and
    received on the most recent ``evaluate`` call. ``compute_calls`` counts
    compute invocations per node id across calls.
    """

    def __init__(self) -> None:
        self.latest_outputs: dict[str, dict[str, Any]] = {}
        self.latest_inputs: dict[str, dict[str, Any]] = {}
        self.compute_calls: Counter[str] = Counter()

    def evaluate(self, network: Network, frame: FrameContext) -> Any:
        if not network.is_enabled:
            raise NetworkDisabledError(f"network '{network.id}' is disabled")
        output_node = network.output_node
        if output_node is None:
            raise OutputNodeMissingError(f"network '{network.id}' has no Output node")

        computed: dict[str, dict[str, Any]] = {}
        resolved_inputs: dict[str, dict[str, Any]] = {}
        visiting: set[str] = set()

        def resolve(node: NodeInstance) -> dict[str, Any]:
            if node.id in computed:
                return computed[node.id]
            if node.id in visiting:
                raise CycleDetectedError(node.id)
            visiting.add(node.id)

            raw: dict[str, Any] = {}
            for port in node.definition.inputs:
                edge = network.incoming(node.id, port.id)
                source = network.nodes.get(edge.source) if edge is not None else None
                if source is not None:
                    outputs = resolve(source)
                    if edge.source_handle is not None and edge.source_handle in outputs:
                        raw[port.id] = outputs[edge.source_handle]
                    else:
                        raw[port.id] = next(iter(outputs.values()), None)
                elif port.id in node.input_values:
                    raw[port.id] = node.input_values[port.id]
                elif port.id in FRAME_PORTS:
                    raw[port.id] = getattr(frame, FRAME_PORTS[port.id])
                else:
                    raw[port.id] = None

            inputs = raw
            self.compute_calls[node.id] += 1
            try:
                inputs = node.definition.prepare_inputs(raw)
                outputs = node.definition.compute(inputs, frame, node)
            except DATA_ERRORS:
                LOGGER.warning(
                    "node %s (%s) failed in network %s; using default outputs",
                    node.id,
                    node.label,
                    network.id,
                    exc_info=True,
                )
                outputs = node.definition.default_outputs()

            visiting.discard(node.id)
            computed[node.id] = outputs
            resolved_inputs[node.id] = inputs
            return outputs

        try:
            final = resolve(output_node)
        finally:
            self.latest_outputs = computed
            self.latest_inputs = resolved_inputs
        return final.get("output")


def evaluate(network: Network, frame: FrameContext) -> Any:
    """Evaluate ``network`` once for ``frame`` and return its Output value."""

    return NetworkEvaluator().evaluate(network, frame)
