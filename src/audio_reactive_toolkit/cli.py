"""CLI entrypoint for audio_reactive_toolkit."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError

from audio_reactive_toolkit.config import ToolkitSettings
from audio_reactive_toolkit.instrumentation import configure_logging
from audio_reactive_toolkit.network.errors import (
    InvalidConnectionError,
    NetworkError,
    UnknownNodeDefinitionError,
)
from audio_reactive_toolkit.network.nodes import NODE_REGISTRY
from audio_reactive_toolkit.network.ports import PortType
from audio_reactive_toolkit.network.presets import PRESETS, instantiate_preset
from audio_reactive_toolkit.network.schema import validate_network_payload
from audio_reactive_toolkit.runner import run_simulation

app = typer.Typer(help="Audio Reactive Toolkit command-line interface.")

nodes_app = typer.Typer(help="Browse the node library.")
app.add_typer(nodes_app, name="nodes")
network_app = typer.Typer(help="Create, validate and simulate animation networks.")
app.add_typer(network_app, name="network")


@app.callback()
def main() -> None:
    """Configure logging from ART_* settings."""
    configure_logging(ToolkitSettings().log_level)


@nodes_app.command("list")
def nodes_list() -> None:
    """List node definition labels."""
    for label in NODE_REGISTRY.list_labels():
        typer.echo(label)


@nodes_app.command("describe")
def nodes_describe(
    label: str,
    output_type: Annotated[PortType, typer.Option("--type", help="Output node type")] = PortType.NUMBER,
) -> None:
    """Show a node's ports, defaults and description as JSON."""
    try:
        definition = NODE_REGISTRY.get(label, output_type)
    except UnknownNodeDefinitionError as err:
        raise typer.BadParameter(str(err)) from err
    typer.echo(json.dumps(definition.describe(), indent=2))


@network_app.command("presets")
def network_presets(
    output_type: Annotated[Optional[PortType], typer.Option("--type", help="Only presets for this output type")] = None,
) -> None:
    """List presets, optionally for one output type."""
    presets = PRESETS.for_type(output_type) if output_type else PRESETS.list_presets()
    for preset in presets:
        typer.echo(f"{preset.id}\t{preset.output_type.value}\t{preset.name}")


@network_app.command("init")
def network_init(
    output: Annotated[Path, typer.Option("--output", "-o", dir_okay=False)],
    preset: Annotated[str, typer.Option("--preset")] = "number-average-volume",
    parameter: Annotated[str, typer.Option("--parameter")] = "intensity",
    output_type: Annotated[Optional[PortType], typer.Option("--type")] = None,
) -> None:
    """Write a network built from a preset as persisted JSON."""
    try:
        network = instantiate_preset(PRESETS.get(preset), parameter, output_type)
    except KeyError as err:
        raise typer.BadParameter(str(err)) from err
    except InvalidConnectionError as err:
        raise typer.BadParameter(f"preset '{preset}' cannot drive that output type: {err}") from err
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(network.to_record(), indent=2), encoding="utf-8")
    typer.echo(f"Wrote network: {output}")


@network_app.command("validate")
def network_validate(
    network: Annotated[list[Path], typer.Option("--network", exists=True, dir_okay=False)],
) -> None:
    """Validate one or more persisted network JSON files."""
    specs = NODE_REGISTRY.node_specs()
    for network_file in network:
        try:
            payload = json.loads(network_file.read_text(encoding="utf-8"))
            validate_network_payload(payload, node_specs=specs)
        except (json.JSONDecodeError, ValidationError) as err:
            raise typer.BadParameter(f"{network_file}: {err}") from err
        typer.echo(f"valid network: {network_file}")


@network_app.command("simulate")
def network_simulate(
    config: Annotated[Path, typer.Option(..., "--config", "-c", exists=True, dir_okay=False)],
    runs_root: Annotated[Optional[Path], typer.Option("--runs-root", file_okay=False)] = None,
) -> None:
    """Evaluate a network over synthetic or WAV frames and record every value."""
    settings = ToolkitSettings()
    if runs_root is not None:
        settings = settings.model_copy(update={"runs_root": runs_root})
    try:
        run_dir = run_simulation(config, settings)
    except (OSError, ValueError, NetworkError) as err:
        raise typer.BadParameter(str(err)) from err
    typer.echo(f"Run completed: {run_dir}")


if __name__ == "__main__":
    app()
