"""Machine creation on a metal control plane."""

import base64
import logging
from typing import Any, Dict, Optional

from metalprov.client.api import SECRET, SERVER_CLAIM
from metalprov.client.provider import ClientProvider
from metalprov.ignition import render_ignition
from metalprov.metal.addresses import AddressAllocator
from metalprov.metal.apply import DEFAULT_FIELD_MANAGER, ResourceApplier
from metalprov.metal.assemble import build_ignition_config, compose_metadata
from metalprov.metal.validation import decode_provider_spec, validate_create_request
from metalprov.models.config import AllocationConfig
from metalprov.models.provider_spec import ProviderSpec
from metalprov.models.request import CreateMachineRequest, CreateMachineResponse


logger = logging.getLogger(__name__)

PROVIDER_NAME = "ironcore-metal"
IGNITION_DATA_KEY = "ignition"


def ignition_name_for(machine_name: str) -> str:
    """Name of the secret holding a machine's ignition."""
    return f"{machine_name}-ignition"


def provider_id_for(namespace: str, server_claim_name: str) -> str:
    """Provider ID reported for a server claim."""
    return f"{PROVIDER_NAME}://{namespace}/{server_claim_name}"


class MetalDriver:
    """Provisions machines as server claims on the metal control plane.

    Each step commits on its own and nothing is rolled back on failure; a
    retried ``create_machine`` converges through idempotent applies.
    """

    def __init__(
        self,
        client_provider: ClientProvider,
        namespace: str,
        *,
        allocation: Optional[AllocationConfig] = None,
        field_manager: str = DEFAULT_FIELD_MANAGER,
    ):
        """Initialize metal driver."""
        self.client_provider = client_provider
        self.namespace = namespace
        self.applier = ResourceApplier(field_manager)
        self.allocator = AddressAllocator(namespace, self.applier, allocation)

    async def create_machine(self, request: CreateMachineRequest) -> CreateMachineResponse:
        """Create the server claim and ignition for a machine."""
        validate_create_request(request, PROVIDER_NAME)
        machine_name = request.machine.name

        logger.info(f"Machine creation request has been received for {machine_name}")
        provider_spec = decode_provider_spec(request.machine_class, request.secret)

        async with self.client_provider.acquire() as client:
            fragments = await self.allocator.allocate_all(client, machine_name, provider_spec.ipam_config)

        metadata = compose_metadata(provider_spec.metadata, fragments)
        ignition_config = build_ignition_config(machine_name, request.secret.data, metadata, provider_spec)
        ignition_secret = self._ignition_secret(machine_name, render_ignition(ignition_config))
        server_claim = self._server_claim(machine_name, provider_spec, ignition_secret["metadata"]["name"])

        # The server claim references the ignition secret, so it goes second
        async with self.client_provider.acquire() as client:
            await self.applier.apply(client, ignition_secret)
            await self.applier.apply(client, server_claim)

        logger.info(f"Machine creation request has been processed for {machine_name}")
        return CreateMachineResponse(
            provider_id=provider_id_for(self.namespace, server_claim["metadata"]["name"]),
            node_name=server_claim["metadata"]["name"],
        )

    def _ignition_secret(self, machine_name: str, ignition: str) -> Dict[str, Any]:
        return {
            "apiVersion": SECRET.api_version,
            "kind": SECRET.kind,
            "metadata": {
                "name": ignition_name_for(machine_name),
                "namespace": self.namespace,
            },
            "data": {
                IGNITION_DATA_KEY: base64.b64encode(ignition.encode("utf-8")).decode("ascii"),
            },
        }

    def _server_claim(self, machine_name: str, provider_spec: ProviderSpec, ignition_name: str) -> Dict[str, Any]:
        return {
            "apiVersion": SERVER_CLAIM.api_version,
            "kind": SERVER_CLAIM.kind,
            "metadata": {
                "name": machine_name,
                "namespace": self.namespace,
                "labels": dict(provider_spec.labels),
            },
            "spec": {
                "power": "On",
                "serverSelector": {"matchLabels": dict(provider_spec.server_labels)},
                "ignitionSecretRef": {"name": ignition_name},
                "image": provider_spec.image,
            },
        }
