"""Errors raised while editing, loading or evaluating networks."""

from __future__ import annotations


class NetworkError(RuntimeError):
    """Evaluation cannot produce a value for a network."""


class NetworkDisabledError(NetworkError):
    pass


class OutputNodeMissingError(NetworkError):
    pass


class CycleDetectedError(NetworkError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"cycle detected at node '{node_id}'")
        self.node_id = node_id


class InvalidConnectionError(ValueError):
    """An edit would produce an edge the network cannot hold."""


class UnknownNodeDefinitionError(KeyError):
    def __init__(self, label: str, available: list[str] | None = None) -> None:
        message = f"Unknown node definition '{label}'"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message)
        self.label = label

    def __str__(self) -> str:
        return str(self.args[0])
