"""Async REST client for the metal control plane.

Talks the Kubernetes resource API: namespaced GETs and server-side apply
PATCHes. Retry policy belongs to the transport, not to this client.
"""

import json
import logging
import os
import ssl
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from metalprov.client.kubeconfig import ClientConfig


logger = logging.getLogger(__name__)

APPLY_PATCH_CONTENT_TYPE = "application/apply-patch+yaml"


class ControlPlaneError(Exception):
    """Base exception for control-plane API errors."""
    pass


class ControlPlaneAPIError(ControlPlaneError):
    """Control plane answered with an error status."""

    def __init__(self, status_code: int, reason: str = "", message: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.message = message
        super().__init__(f"control plane error {status_code} {reason}: {message}".rstrip(": "))


class ResourceNotFoundError(ControlPlaneAPIError):
    """Requested object does not exist (404)."""

    def __init__(self, message: str = "not found"):
        super().__init__(404, "NotFound", message)


class ControlPlaneConnectionError(ControlPlaneError):
    """Request never got an answer from the control plane."""
    pass


@dataclass(frozen=True)
class ResourceKind:
    """REST mapping of one namespaced resource type."""
    group: str
    version: str
    kind: str
    plural: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def path(self, namespace: str, name: Optional[str] = None) -> str:
        """Build the REST path for a collection or a single object."""
        prefix = f"/apis/{self.group}/{self.version}" if self.group else f"/api/{self.version}"
        path = f"{prefix}/namespaces/{namespace}/{self.plural}"
        if name:
            path = f"{path}/{name}"
        return path


SECRET = ResourceKind("", "v1", "Secret", "secrets")
IP_ADDRESS_CLAIM = ResourceKind("ipam.cluster.x-k8s.io", "v1beta1", "IPAddressClaim", "ipaddressclaims")
IP_ADDRESS = ResourceKind("ipam.cluster.x-k8s.io", "v1beta1", "IPAddress", "ipaddresses")
SERVER_CLAIM = ResourceKind("metal.ironcore.dev", "v1alpha1", "ServerClaim", "serverclaims")

KNOWN_KINDS: Dict[Tuple[str, str], ResourceKind] = {
    (k.api_version, k.kind): k for k in (SECRET, IP_ADDRESS_CLAIM, IP_ADDRESS, SERVER_CLAIM)
}


def kind_for(manifest: Dict[str, Any]) -> ResourceKind:
    """Look up the resource kind of a manifest by apiVersion and kind."""
    key = (manifest.get("apiVersion", ""), manifest.get("kind", ""))
    try:
        return KNOWN_KINDS[key]
    except KeyError:
        raise ValueError(f"unknown resource kind {key[0]}/{key[1]}") from None


def _ssl_context(config: ClientConfig) -> ssl.SSLContext:
    if config.insecure:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif config.ca_data:
        context = ssl.create_default_context(cadata=config.ca_data.decode("utf-8"))
    else:
        context = ssl.create_default_context(cafile=config.ca_file)

    if config.client_cert_file:
        context.load_cert_chain(config.client_cert_file, config.client_key_file)
    elif config.client_cert_data:
        # load_cert_chain only accepts paths
        with tempfile.TemporaryDirectory() as tmp:
            cert_file = os.path.join(tmp, "client.crt")
            key_file = os.path.join(tmp, "client.key")
            with open(cert_file, "wb") as f:
                f.write(config.client_cert_data)
            with open(key_file, "wb") as f:
                f.write(config.client_key_data or b"")
            context.load_cert_chain(cert_file, key_file)
    return context


class ControlPlaneClient:
    """Async client for namespaced control-plane objects."""

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    @classmethod
    def from_config(cls, config: ClientConfig, timeout: float = 30.0) -> "ControlPlaneClient":
        """Build a client from resolved kubeconfig settings."""
        headers = {"Accept": "application/json"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        http_client = httpx.AsyncClient(
            base_url=config.server.rstrip("/"),
            headers=headers,
            verify=_ssl_context(config),
            timeout=timeout,
        )
        return cls(http_client)

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise ControlPlaneConnectionError(f"{method} {path}: {e}") from e

        if response.status_code >= 400:
            reason, message = "", response.text[:200]
            try:
                payload = response.json()
                if isinstance(payload, dict):
                    reason = payload.get("reason", "")
                    message = payload.get("message", message)
            except ValueError:
                pass
            if response.status_code == 404:
                raise ResourceNotFoundError(message)
            raise ControlPlaneAPIError(response.status_code, reason, message)

        return response.json()

    async def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        """Fetch one object."""
        return await self._request("GET", kind.path(namespace, name))

    async def apply(
        self,
        manifest: Dict[str, Any],
        *,
        field_manager: str,
        force: bool = True,
    ) -> Dict[str, Any]:
        """Server-side apply a manifest and return the stored object."""
        kind = kind_for(manifest)
        metadata = manifest.get("metadata", {})
        path = kind.path(metadata["namespace"], metadata["name"])
        params = {"fieldManager": field_manager}
        if force:
            params["force"] = "true"
        logger.debug(f"Applying {kind.kind} {metadata['namespace']}/{metadata['name']}")
        return await self._request(
            "PATCH",
            path,
            params=params,
            content=json.dumps(manifest),
            headers={"Content-Type": APPLY_PATCH_CONTENT_TYPE},
        )
