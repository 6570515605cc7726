"""Idempotent create-or-update of control-plane objects."""

import logging
from typing import Any, Dict

from metalprov.client.api import ControlPlaneClient, ControlPlaneError
from metalprov.errors import ApplyError


logger = logging.getLogger(__name__)

DEFAULT_FIELD_MANAGER = "metal.ironcore.dev/machine-controller-manager"


def object_key(manifest: Dict[str, Any]) -> str:
    """Human readable kind/namespace/name of a manifest."""
    metadata = manifest.get("metadata", {})
    return f"{manifest.get('kind', '?')} {metadata.get('namespace', '')}/{metadata.get('name', '')}"


class ResourceApplier:
    """Pushes desired object state with forced server-side apply.

    Plain creates are never used: a retried request must converge on the
    existing object instead of failing with "already exists".
    """

    def __init__(self, field_manager: str = DEFAULT_FIELD_MANAGER):
        self.field_manager = field_manager

    async def apply(self, client: ControlPlaneClient, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a manifest and return the stored object."""
        target = object_key(manifest)
        try:
            result = await client.apply(manifest, field_manager=self.field_manager, force=True)
        except ControlPlaneError as e:
            raise ApplyError(target, e) from e
        logger.debug(f"Applied {target}")
        return result
