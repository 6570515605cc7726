"""Configuration management for the agent."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML

from metalprov.models.config import DriverConfig


logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads the driver configuration from a config directory."""

    def __init__(self, config_dir: Path):
        """Initialize configuration manager."""
        self.config_dir = Path(config_dir)
        self.yaml = YAML(typ="safe")
        self.config: Optional[DriverConfig] = None

    async def load(self) -> DriverConfig:
        """Load the main configuration file."""
        config_file = self.config_dir / "config.yaml"
        logger.info(f"Loading configuration from {config_file}")
        if not config_file.exists():
            raise FileNotFoundError(f"Main config not found: {config_file}")

        try:
            data = await self._read_yaml(config_file)
            self.config = DriverConfig(**(data or {}))
        except ValidationError as e:
            logger.error(f"Invalid main config: {e}")
            raise

        kubeconfig = Path(self.config.kubeconfig_path)
        if not kubeconfig.is_absolute():
            self.config.kubeconfig_path = str(self.config_dir / kubeconfig)

        logger.debug(f"Loaded main config: {config_file}")
        return self.config

    async def _read_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse YAML file."""
        content = await asyncio.to_thread(file_path.read_text)
        return self.yaml.load(content)
