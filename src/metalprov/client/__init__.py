"""Control-plane client and its credential-watching provider."""

from metalprov.client.api import (
    ControlPlaneClient,
    ControlPlaneError,
    ControlPlaneAPIError,
    ControlPlaneConnectionError,
    ResourceKind,
    ResourceNotFoundError,
)
from metalprov.client.provider import ClientProvider

__all__ = [
    "ClientProvider",
    "ControlPlaneClient",
    "ControlPlaneError",
    "ControlPlaneAPIError",
    "ControlPlaneConnectionError",
    "ResourceKind",
    "ResourceNotFoundError",
]
