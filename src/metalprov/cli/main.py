"""Main CLI implementation using Typer."""

from pathlib import Path
from typing import Any, Callable, Optional

import typer
from rich.console import Console

from metalprov.cli.commands import create_machine, validate_request
from metalprov.errors import ProvisioningError


# Create Typer app
app = typer.Typer(
    name="metalprovctl",
    help="Metal Provisioner - bare-metal machine provisioning",
    add_completion=False,
)

# Console for rich output
console = Console()


def _run_cli_command(handler: Callable[..., Any], **kwargs: Any):
    """Helper to run a CLI command with error handling."""
    try:
        handler(**kwargs)
    except ProvisioningError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("create")
def create_command(
    request_file: Path = typer.Argument(..., help="YAML file with the machine creation request"),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", "-c", help="Directory holding config.yaml"
    ),
):
    """Create a machine on the metal control plane."""
    _run_cli_command(create_machine, request_file=request_file, config_dir=config_dir)


@app.command("validate")
def validate_command(
    request_file: Path = typer.Argument(..., help="YAML file with the machine creation request"),
):
    """Validate a machine creation request."""
    _run_cli_command(validate_request, request_file=request_file)


def main():
    """Main entry point for CLI."""
    app()
