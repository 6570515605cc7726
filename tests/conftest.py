"""Shared fixtures: an in-memory metal control plane."""

import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Tuple

import pytest

from metalprov.client.api import IP_ADDRESS, IP_ADDRESS_CLAIM, ResourceNotFoundError
from metalprov.utils.templates import merge_dicts


class FakeControlPlane:
    """Stores applied objects in memory and records every call."""

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.reads: List[Tuple[str, str]] = []
        self.writes: List[Dict[str, Any]] = []
        self.get_errors: Dict[Tuple[str, str], Exception] = {}
        self.apply_errors: Dict[str, Exception] = {}
        self.auto_bind: Dict[str, Tuple[str, int, str]] = {}
        self.closed = False

    async def get(self, kind, namespace, name):
        self.reads.append((kind.kind, name))
        error = self.get_errors.get((kind.kind, name))
        if error is not None:
            raise error
        try:
            return copy.deepcopy(self.objects[(kind.kind, namespace, name)])
        except KeyError:
            raise ResourceNotFoundError(f'{kind.plural} "{name}" not found') from None

    async def apply(self, manifest, *, field_manager, force=True):
        kind = manifest["kind"]
        if kind in self.apply_errors:
            raise self.apply_errors[kind]
        metadata = manifest["metadata"]
        key = (kind, metadata["namespace"], metadata["name"])
        self.writes.append(copy.deepcopy(manifest))
        self.objects[key] = merge_dicts(self.objects.get(key, {}), manifest)
        if kind == IP_ADDRESS_CLAIM.kind and metadata["name"] in self.auto_bind:
            self.bind_claim(metadata["namespace"], metadata["name"], *self.auto_bind[metadata["name"]])
        return copy.deepcopy(self.objects[key])

    async def aclose(self):
        self.closed = True

    def writes_of(self, kind: str) -> List[Dict[str, Any]]:
        return [w for w in self.writes if w["kind"] == kind]

    def add_claim(self, namespace: str, name: str, bound_to: str = ""):
        claim = {
            "apiVersion": IP_ADDRESS_CLAIM.api_version,
            "kind": IP_ADDRESS_CLAIM.kind,
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"poolRef": {"apiGroup": "ipam.cluster.x-k8s.io", "kind": "GlobalInClusterIPPool", "name": "pool-a"}},
            "status": {"addressRef": {"name": bound_to}} if bound_to else None,
        }
        self.objects[(IP_ADDRESS_CLAIM.kind, namespace, name)] = claim

    def bind_claim(self, namespace: str, claim_name: str, address: str, prefix: int, gateway: str):
        """Act as the IPAM allocator: create an address and bind the claim to it."""
        address_name = f"{claim_name}-addr"
        self.objects[(IP_ADDRESS.kind, namespace, address_name)] = {
            "apiVersion": IP_ADDRESS.api_version,
            "kind": IP_ADDRESS.kind,
            "metadata": {"name": address_name, "namespace": namespace},
            "spec": {"address": address, "prefix": prefix, "gateway": gateway},
        }
        claim = self.objects[(IP_ADDRESS_CLAIM.kind, namespace, claim_name)]
        claim["status"] = {"addressRef": {"name": address_name}}


class FakeClientProvider:
    """Hands out one fixed client."""

    def __init__(self, client):
        self.client = client
        self.acquisitions = 0

    @asynccontextmanager
    async def acquire(self):
        self.acquisitions += 1
        yield self.client


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def client_provider(control_plane):
    return FakeClientProvider(control_plane)
