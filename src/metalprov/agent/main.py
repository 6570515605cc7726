"""Main agent implementation."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from metalprov.agent.config import ConfigManager
from metalprov.client.provider import ClientProvider
from metalprov.metal.driver import MetalDriver
from metalprov.models.request import CreateMachineRequest, CreateMachineResponse
from metalprov.utils.logging import setup_logging


logger = logging.getLogger(__name__)


class MetalAgent:
    """Owns the client provider and the driver for the process lifetime."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the agent."""
        self.config_dir = config_dir or Path("./configs")
        self.config_manager: Optional[ConfigManager] = None
        self.client_provider: Optional[ClientProvider] = None
        self.driver: Optional[MetalDriver] = None
        self.shutdown_event = asyncio.Event()

    async def initialize(self):
        """Initialize agent components."""
        self.config_manager = ConfigManager(self.config_dir)
        config = await self.config_manager.load()

        setup_logging(config.log_level)

        self.client_provider, namespace = await ClientProvider.create(
            Path(config.kubeconfig_path),
            request_timeout=config.request_timeout,
        )
        self.driver = MetalDriver(
            self.client_provider,
            namespace,
            allocation=config.allocation,
            field_manager=config.field_manager,
        )

        logger.info(f"Agent initialized for namespace {namespace}")

    async def create_machine(self, request: CreateMachineRequest) -> CreateMachineResponse:
        """Create a machine through the driver."""
        if self.driver is None:
            raise RuntimeError("Agent is not initialized")
        return await self.driver.create_machine(request)

    async def run(self):
        """Run until a shutdown signal arrives."""
        await self.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.shutdown)

        try:
            logger.info("Agent started, waiting for shutdown signal")
            await self.shutdown_event.wait()
        finally:
            await self.close()

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self.shutdown_event.set()

    async def close(self):
        """Clean up resources."""
        logger.info("Cleaning up agent resources")
        if self.client_provider:
            await self.client_provider.close()
        logger.info("Agent cleanup completed")


def config_dir_from_env() -> Optional[Path]:
    """Config directory override from the environment."""
    config_dir = os.environ.get("METALPROV_CONFIG_DIR")
    return Path(config_dir) if config_dir else None


async def run_agent():
    """Run the agent."""
    agent = MetalAgent(config_dir=config_dir_from_env())
    await agent.run()
