"""Ignition rendering for first boot of a metal server.

The rendered document is Ignition v3 JSON. It carries the hostname, the
machine metadata, the user payload with a unit running it, and optional DNS
settings. An extra ignition fragment from the machine class is merged on top.
"""

import base64
import ipaddress
import json
import logging
from typing import Any, Dict, List, Optional

from jinja2 import TemplateError
from pydantic import BaseModel, Field
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from metalprov.errors import RenderError
from metalprov.utils.templates import merge_dicts, render_template


logger = logging.getLogger(__name__)

IGNITION_VERSION = "3.2.0"
METADATA_PATH = "/var/lib/metal-cloud-config/metadata"
INIT_SCRIPT_PATH = "/var/lib/metal-cloud-config/init.sh"

BASE_TEMPLATE = """\
ignition:
  version: "{{ version }}"
storage:
  files:
    - path: /etc/hostname
      mode: 420
      overwrite: true
      contents:
        source: "{{ hostname_source }}"
    - path: {{ metadata_path }}
      mode: 420
      overwrite: true
      contents:
        source: "{{ metadata_source }}"
{%- if user_data_source %}
    - path: {{ init_script_path }}
      mode: 493
      overwrite: true
      contents:
        source: "{{ user_data_source }}"
{%- endif %}
{%- if resolved_source %}
    - path: /etc/systemd/resolved.conf.d/dns.conf
      mode: 420
      overwrite: true
      contents:
        source: "{{ resolved_source }}"
{%- endif %}
{%- if user_data_source %}
systemd:
  units:
    - name: metal-cloud-config-init.service
      enabled: true
      contents: |
        [Unit]
        Description=Run metal cloud config init script
        Wants=network-online.target
        After=network-online.target
        ConditionPathExists={{ init_script_path }}

        [Service]
        Type=oneshot
        RemainAfterExit=yes
        ExecStart={{ init_script_path }}

        [Install]
        WantedBy=multi-user.target
{%- endif %}
"""

RESOLVED_TEMPLATE = """\
[Resolve]
DNS={{ dns_servers | join(' ') }}
"""


class IgnitionConfig(BaseModel):
    """Everything needed to render the ignition of one machine."""
    hostname: str = Field(..., min_length=1)
    user_data: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ignition: Optional[str] = None
    ignition_override: bool = False
    dns_servers: List[str] = Field(default_factory=list)


def _data_url(content: str) -> str:
    return "data:;base64," + base64.b64encode(content.encode("utf-8")).decode("ascii")


def _load_fragment(fragment: str, hostname: str) -> Dict[str, Any]:
    try:
        data = YAML(typ="safe").load(fragment)
    except YAMLError as e:
        raise RenderError(f"invalid ignition fragment: {e}", machine=hostname) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RenderError("ignition fragment is not a mapping", machine=hostname)
    return data


def render_ignition(config: IgnitionConfig) -> str:
    """Render the ignition JSON for a machine."""
    for server in config.dns_servers:
        try:
            ipaddress.ip_address(server)
        except ValueError as e:
            raise RenderError(f"invalid DNS server {server!r}", machine=config.hostname) from e

    try:
        metadata_json = json.dumps(config.metadata, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise RenderError(f"metadata is not JSON serializable: {e}", machine=config.hostname) from e

    try:
        resolved = render_template(RESOLVED_TEMPLATE, dns_servers=config.dns_servers) if config.dns_servers else ""
        document = render_template(
            BASE_TEMPLATE,
            version=IGNITION_VERSION,
            hostname_source=_data_url(config.hostname + "\n"),
            metadata_path=METADATA_PATH,
            metadata_source=_data_url(metadata_json),
            init_script_path=INIT_SCRIPT_PATH,
            user_data_source=_data_url(config.user_data) if config.user_data else "",
            resolved_source=_data_url(resolved) if resolved else "",
        )
    except TemplateError as e:
        raise RenderError(f"failed to render ignition template: {e}", machine=config.hostname) from e

    ignition = _load_fragment(document, config.hostname)

    if config.ignition:
        fragment = _load_fragment(config.ignition, config.hostname)
        ignition = merge_dicts(ignition, fragment, append_lists=not config.ignition_override)
        logger.debug(
            f"Merged ignition fragment into {config.hostname} "
            f"({'override' if config.ignition_override else 'append'})"
        )

    return json.dumps(ignition)
