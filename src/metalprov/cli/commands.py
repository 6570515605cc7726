"""Command implementations for CLI."""

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from metalprov.agent.main import MetalAgent, config_dir_from_env
from metalprov.errors import InvalidArgumentError
from metalprov.metal.driver import PROVIDER_NAME
from metalprov.metal.validation import decode_provider_spec, validate_create_request
from metalprov.models.request import CreateMachineRequest, CreateMachineResponse


console = Console()


def load_request(request_file: Path) -> CreateMachineRequest:
    """Load a machine creation request from a YAML file."""
    try:
        data: Dict[str, Any] = YAML(typ="safe").load(Path(request_file).read_text()) or {}
    except OSError as e:
        raise InvalidArgumentError(f"unable to read request file {request_file}: {e}") from e
    except YAMLError as e:
        raise InvalidArgumentError(f"unable to parse request file {request_file}: {e}") from e

    try:
        return CreateMachineRequest.model_validate(data)
    except ValidationError as e:
        raise InvalidArgumentError(f"invalid request file {request_file}: {e}") from e


async def _create(config_dir: Optional[Path], request: CreateMachineRequest) -> CreateMachineResponse:
    agent = MetalAgent(config_dir=config_dir or config_dir_from_env())
    await agent.initialize()
    try:
        return await agent.create_machine(request)
    finally:
        await agent.close()


def create_machine(request_file: Path, config_dir: Optional[Path] = None):
    """Create a machine from a request file."""
    request = load_request(request_file)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Creating machine...", total=None)

        response = asyncio.run(_create(config_dir, request))

        progress.update(task, completed=True)

    table = Table(title="Machine")
    table.add_column("Node", style="cyan")
    table.add_column("Provider ID", style="magenta")
    table.add_row(response.node_name, response.provider_id)
    console.print(table)


def validate_request(request_file: Path):
    """Validate a request file without touching the control plane."""
    request = load_request(request_file)
    validate_create_request(request, PROVIDER_NAME)
    spec = decode_provider_spec(request.machine_class, request.secret)

    console.print("[green]✓[/green] Request is valid")
    console.print(f"  Machine: {request.machine.name}")
    console.print(f"  Image: {spec.image}")
    console.print(f"  Networks: {len(spec.ipam_config)}")
