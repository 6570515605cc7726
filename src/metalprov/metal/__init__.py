"""Machine provisioning against the metal control plane."""

from metalprov.metal.addresses import AddressAllocator, claim_name_for
from metalprov.metal.apply import ResourceApplier
from metalprov.metal.driver import MetalDriver, PROVIDER_NAME

__all__ = [
    "AddressAllocator",
    "MetalDriver",
    "PROVIDER_NAME",
    "ResourceApplier",
    "claim_name_for",
]
