"""Machine creation request and response models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Machine(BaseModel):
    """Machine object the request is made for."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    namespace: Optional[str] = None


class MachineClass(BaseModel):
    """Machine class naming the provider and its raw provider spec."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    provider: str = Field(..., description="Provider tag the class is meant for")
    provider_spec: Dict[str, Any] = Field(default_factory=dict, alias="providerSpec")


class MachineSecret(BaseModel):
    """Secret attached to the machine class."""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    namespace: Optional[str] = None
    data: Dict[str, bytes] = Field(default_factory=dict)


class CreateMachineRequest(BaseModel):
    """Request to create one machine."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    machine: Optional[Machine] = None
    machine_class: Optional[MachineClass] = Field(default=None, alias="machineClass")
    secret: Optional[MachineSecret] = None


class CreateMachineResponse(BaseModel):
    """Result of a successful machine creation."""
    model_config = ConfigDict(populate_by_name=True)

    provider_id: str = Field(..., alias="providerID")
    node_name: str = Field(..., alias="nodeName")
