"""
Metal Provisioner - bare-metal machine provisioning driver.

Translates machine creation requests into address claims, an ignition secret
and a server claim on a metal control plane.
"""

__version__ = "1.0.0"
__author__ = "Metal Provisioner Development Team"

# Re-export key components for easier access
from metalprov.models.config import DriverConfig
from metalprov.models.request import CreateMachineRequest, CreateMachineResponse
from metalprov.models.provider_spec import ProviderSpec

__all__ = [
    "DriverConfig",
    "CreateMachineRequest",
    "CreateMachineResponse",
    "ProviderSpec",
]
