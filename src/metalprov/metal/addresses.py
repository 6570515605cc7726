"""Network identity allocation through address claims.

For every network reference of a machine an ``IPAddressClaim`` is looked up
or created, then polled until the external IPAM allocator binds it to an
``IPAddress``. The resolved address becomes a metadata fragment keyed by the
reference's metadata key.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from metalprov.client.api import (
    IP_ADDRESS,
    IP_ADDRESS_CLAIM,
    ControlPlaneClient,
    ControlPlaneError,
    ResourceNotFoundError,
)
from metalprov.errors import (
    AddressResolutionError,
    AllocationCreateError,
    AllocationLookupError,
    AllocationPollError,
    AllocationTimeoutError,
    ApplyError,
    MissingPoolSelectorError,
)
from metalprov.metal.apply import ResourceApplier
from metalprov.models.config import AllocationConfig
from metalprov.models.provider_spec import CAPI_IPAM_GROUP, IPAMConfig
from metalprov.models.resources import IPAddress, IPAddressClaim


logger = logging.getLogger(__name__)

# DNS-1123 subdomain limit for object names
CLAIM_NAME_MAX_LENGTH = 253


def claim_name_for(machine_name: str, metadata_key: str) -> str:
    """Derive the claim name for one network of a machine.

    Names over the limit are cut at CLAIM_NAME_MAX_LENGTH. Two machines
    whose names share the cut prefix end up on the same claim.
    """
    name = f"{machine_name}-{metadata_key}"
    if len(name) > CLAIM_NAME_MAX_LENGTH:
        logger.warning(
            f"IP address claim name {name} is too long, shortening it which can cause name collisions"
        )
        name = name[:CLAIM_NAME_MAX_LENGTH]
    return name


class AddressAllocator:
    """Obtains resolved addresses for a machine's network references."""

    def __init__(
        self,
        namespace: str,
        applier: ResourceApplier,
        config: Optional[AllocationConfig] = None,
    ):
        self.namespace = namespace
        self.applier = applier
        self.config = config or AllocationConfig()

    async def allocate_all(
        self,
        client: ControlPlaneClient,
        machine_name: str,
        networks: List[IPAMConfig],
    ) -> List[Dict[str, Any]]:
        """Allocate every network in order, stopping at the first failure."""
        fragments = []
        for network in networks:
            if network.ipam_ref is not None and network.ipam_ref.api_group != CAPI_IPAM_GROUP:
                logger.debug(
                    f"Skipping network {network.metadata_key} of {machine_name}: "
                    f"unsupported pool group {network.ipam_ref.api_group}"
                )
                continue
            fragments.append(await self.allocate(client, machine_name, network))
        return fragments

    async def allocate(
        self,
        client: ControlPlaneClient,
        machine_name: str,
        network: IPAMConfig,
    ) -> Dict[str, Any]:
        """Allocate one network and return its metadata fragment."""
        name = claim_name_for(machine_name, network.metadata_key)
        key = f"{self.namespace}/{name}"

        claim = await self._lookup(client, name, key)
        if claim is None:
            await self._create(client, name, key, network)
            claim = await self._wait_until_bound(client, name, key)
        elif not claim.bound:
            logger.debug(f"IP address claim {key} found, waiting for it to be bound")
            claim = await self._wait_until_bound(client, name, key)
        else:
            logger.debug(f"IP address claim {key} found bound")

        address = await self._resolve(client, claim, key)
        return {
            network.metadata_key: {
                "ip": address.spec.address,
                "prefix": address.spec.prefix,
                "gateway": address.spec.gateway,
            }
        }

    async def _lookup(self, client: ControlPlaneClient, name: str, key: str) -> Optional[IPAddressClaim]:
        try:
            obj = await client.get(IP_ADDRESS_CLAIM, self.namespace, name)
        except ResourceNotFoundError:
            return None
        except ControlPlaneError as e:
            raise AllocationLookupError("failed to get IP address claim", key, e) from e
        try:
            return IPAddressClaim.from_object(obj)
        except ValidationError as e:
            raise AllocationLookupError("malformed IP address claim", key, e) from e

    async def _create(self, client: ControlPlaneClient, name: str, key: str, network: IPAMConfig):
        if network.ipam_ref is None or not network.ipam_ref.name:
            raise MissingPoolSelectorError(
                f"ipamRef of network {network.metadata_key} is not set", key
            )

        logger.debug(f"Creating IP address claim {key}")
        manifest = {
            "apiVersion": IP_ADDRESS_CLAIM.api_version,
            "kind": IP_ADDRESS_CLAIM.kind,
            "metadata": {"name": name, "namespace": self.namespace},
            "spec": {
                "poolRef": {
                    "apiGroup": network.ipam_ref.api_group,
                    "kind": network.ipam_ref.kind,
                    "name": network.ipam_ref.name,
                },
            },
        }
        try:
            await self.applier.apply(client, manifest)
        except ApplyError as e:
            raise AllocationCreateError("error creating IP address claim", key, e.cause) from e

    async def _wait_until_bound(self, client: ControlPlaneClient, name: str, key: str) -> IPAddressClaim:
        """Poll the claim until the allocator binds it or the deadline passes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.poll_timeout

        while True:
            try:
                claim = IPAddressClaim.from_object(
                    await client.get(IP_ADDRESS_CLAIM, self.namespace, name)
                )
            except ResourceNotFoundError:
                # Not visible yet right after creation
                claim = None
            except ControlPlaneError as e:
                raise AllocationPollError("failed to poll IP address claim", key, e) from e
            except ValidationError as e:
                raise AllocationPollError("malformed IP address claim", key, e) from e

            if claim is not None and claim.bound:
                return claim

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise AllocationTimeoutError(
                    f"IP address claim was not bound within {self.config.poll_timeout}s", key
                )
            await asyncio.sleep(min(self.config.poll_interval, remaining))

    async def _resolve(self, client: ControlPlaneClient, claim: IPAddressClaim, key: str) -> IPAddress:
        address_name = claim.status.address_ref.name
        try:
            obj = await client.get(IP_ADDRESS, self.namespace, address_name)
            return IPAddress.model_validate(obj)
        except ControlPlaneError as e:
            raise AddressResolutionError(f"failed to get IP address {address_name}", key, e) from e
        except ValidationError as e:
            raise AddressResolutionError(f"malformed IP address {address_name}", key, e) from e
