"""Kubeconfig loading for the control-plane client."""

import base64
import binascii
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from metalprov.errors import CredentialParseError, CredentialReadError, NamespaceResolutionError


logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Connection settings resolved from the current kubeconfig context."""
    server: str
    namespace: Optional[str] = None
    ca_data: Optional[bytes] = None
    ca_file: Optional[str] = None
    insecure: bool = False
    token: Optional[str] = None
    client_cert_data: Optional[bytes] = None
    client_key_data: Optional[bytes] = None
    client_cert_file: Optional[str] = None
    client_key_file: Optional[str] = None


def read_kubeconfig(path: Path) -> Dict[str, Any]:
    """Read and parse a kubeconfig document."""
    try:
        content = Path(path).read_text()
    except OSError as e:
        raise CredentialReadError("failed to read metal kubeconfig", str(path)) from e

    try:
        data = YAML(typ="safe").load(content)
    except YAMLError as e:
        raise CredentialParseError("unable to parse metal cluster kubeconfig", str(path)) from e

    if not isinstance(data, dict):
        raise CredentialParseError("metal cluster kubeconfig is not a mapping", str(path))
    return data


def _named(entries: Any, name: Any, section: str, path: Path) -> Dict[str, Any]:
    if entries is not None and not isinstance(entries, list):
        raise CredentialParseError(f"{section}s of metal cluster kubeconfig is not a list", str(path))
    for entry in entries or []:
        if isinstance(entry, dict) and entry.get("name") == name:
            value = entry.get(section) or {}
            if not isinstance(value, dict):
                raise CredentialParseError(
                    f"{section} {name!r} of metal cluster kubeconfig is not a mapping", str(path)
                )
            return value
    raise CredentialParseError(f"{section} {name!r} not found in metal cluster kubeconfig", str(path))


def _string(section: Dict[str, Any], field: str, path: Path) -> Optional[str]:
    value = section.get(field)
    if value is not None and not isinstance(value, str):
        raise CredentialParseError(f"{field} of metal cluster kubeconfig is not a string", str(path))
    return value


def _decode(value: Optional[str], field: str, path: Path) -> Optional[bytes]:
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise CredentialParseError(f"invalid base64 in {field}", str(path)) from e


def _relative_to(path: Path, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    file_path = Path(value)
    if not file_path.is_absolute():
        file_path = path.parent / file_path
    return str(file_path)


def load_client_config(path: Path) -> ClientConfig:
    """Resolve the current context of a kubeconfig into a ClientConfig."""
    path = Path(path)
    data = read_kubeconfig(path)

    current = _string(data, "current-context", path)
    if not current:
        raise CredentialParseError("no current-context in metal cluster kubeconfig", str(path))

    context = _named(data.get("contexts"), current, "context", path)
    cluster = _named(data.get("clusters"), _string(context, "cluster", path), "cluster", path)
    user = {}
    user_name = _string(context, "user", path)
    if user_name:
        user = _named(data.get("users"), user_name, "user", path)

    server = _string(cluster, "server", path)
    if not server:
        raise CredentialParseError("no server for current context in metal cluster kubeconfig", str(path))

    return ClientConfig(
        server=server,
        namespace=_string(context, "namespace", path),
        ca_data=_decode(_string(cluster, "certificate-authority-data", path), "certificate-authority-data", path),
        ca_file=_relative_to(path, _string(cluster, "certificate-authority", path)),
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
        token=_string(user, "token", path),
        client_cert_data=_decode(_string(user, "client-certificate-data", path), "client-certificate-data", path),
        client_key_data=_decode(_string(user, "client-key-data", path), "client-key-data", path),
        client_cert_file=_relative_to(path, _string(user, "client-certificate", path)),
        client_key_file=_relative_to(path, _string(user, "client-key", path)),
    )


def resolve_namespace(config: ClientConfig, path: Path) -> str:
    """Get the operating namespace of the current context."""
    if not config.namespace:
        raise NamespaceResolutionError("got an empty namespace from metal cluster kubeconfig", str(path))
    return config.namespace
