"""Pydantic models for configuration, requests and control-plane objects."""

from metalprov.models.config import DriverConfig, AllocationConfig
from metalprov.models.provider_spec import ProviderSpec, IPAMConfig, IPAMRef
from metalprov.models.request import (
    Machine,
    MachineClass,
    MachineSecret,
    CreateMachineRequest,
    CreateMachineResponse,
)
from metalprov.models.resources import IPAddressClaim, IPAddress

__all__ = [
    "DriverConfig",
    "AllocationConfig",
    "ProviderSpec",
    "IPAMConfig",
    "IPAMRef",
    "Machine",
    "MachineClass",
    "MachineSecret",
    "CreateMachineRequest",
    "CreateMachineResponse",
    "IPAddressClaim",
    "IPAddress",
]
