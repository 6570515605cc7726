"""Assembly of the ignition input for a machine."""

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from metalprov.errors import MissingPayloadError, RenderError
from metalprov.ignition import IgnitionConfig
from metalprov.models.provider_spec import ProviderSpec
from metalprov.utils.templates import merge_dicts


logger = logging.getLogger(__name__)

USER_DATA_KEY = "userData"


def compose_metadata(base: Optional[Dict[str, Any]], fragments: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Deep-merge address fragments into the base metadata in list order.

    The caller's base is never modified; for conflicting leaves the later
    fragment wins.
    """
    composed = copy.deepcopy(base) if base else {}
    for fragment in fragments:
        composed = merge_dicts(composed, fragment)
    return composed


def build_ignition_config(
    machine_name: str,
    secret_data: Mapping[str, bytes],
    metadata: Dict[str, Any],
    provider_spec: ProviderSpec,
) -> IgnitionConfig:
    """Build the renderer input from the machine, its secret and composed metadata."""
    user_data = secret_data.get(USER_DATA_KEY)
    if user_data is None:
        raise MissingPayloadError(
            f"failed to find {USER_DATA_KEY} in machine secret",
            machine=machine_name,
        )

    try:
        payload = user_data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RenderError(f"{USER_DATA_KEY} is not valid UTF-8", machine=machine_name) from e

    return IgnitionConfig(
        hostname=machine_name,
        user_data=payload,
        metadata=metadata,
        ignition=provider_spec.ignition,
        ignition_override=provider_spec.ignition_override,
        dns_servers=provider_spec.dns_servers,
    )
