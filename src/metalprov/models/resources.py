"""Read-side views of control-plane objects."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ObjectMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    namespace: Optional[str] = None


class LocalObjectReference(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""


class IPAddressClaimStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address_ref: LocalObjectReference = Field(default_factory=LocalObjectReference, alias="addressRef")


class IPAddressClaim(BaseModel):
    """Address claim as stored in the control plane."""
    model_config = ConfigDict(extra="ignore")

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    status: IPAddressClaimStatus = Field(default_factory=IPAddressClaimStatus)

    @property
    def bound(self) -> bool:
        """Whether the allocator has attached an address."""
        return bool(self.status.address_ref.name)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "IPAddressClaim":
        # Status is null until the allocator first touches the claim
        data = dict(obj)
        if data.get("status") is None:
            data.pop("status", None)
        return cls.model_validate(data)


class IPAddressSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str
    prefix: int
    gateway: Optional[str] = None


class IPAddress(BaseModel):
    """Resolved address bound to a claim."""
    model_config = ConfigDict(extra="ignore")

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: IPAddressSpec
