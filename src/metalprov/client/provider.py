"""Hot-reloadable control-plane client provider.

The provider owns exactly one live client. The client is rebuilt whenever
the kubeconfig changes on disk. Callers hold ``acquire()`` for the whole
sequence of dependent calls so a rotation can never swap the client out
from under them.

Any number of callers may hold the client at once. A swap waits until no
caller holds it, and callers arriving while a swap is pending queue behind
the swap.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Tuple

from watchfiles import awatch

from metalprov.client.api import ControlPlaneClient
from metalprov.client.kubeconfig import ClientConfig, load_client_config, resolve_namespace
from metalprov.errors import ClientConstructionError, CredentialError, CredentialWatchError


logger = logging.getLogger(__name__)

ClientFactory = Callable[[ClientConfig, float], ControlPlaneClient]


def _exit_on_watch_failure(error: BaseException):
    """Default fatal handler: a provider that cannot see rotations is useless."""
    raise SystemExit(1)


class ClientProvider:
    """Holds the shared control-plane client and keeps it fresh."""

    def __init__(
        self,
        kubeconfig_path: Path,
        *,
        request_timeout: float = 30.0,
        client_factory: ClientFactory = ControlPlaneClient.from_config,
        on_watch_failure: Callable[[BaseException], None] = _exit_on_watch_failure,
    ):
        """Initialize client provider."""
        # abspath, not resolve: secret mounts rotate the file through symlinks
        self.kubeconfig_path = Path(os.path.abspath(kubeconfig_path))
        self.request_timeout = request_timeout
        self._client_factory = client_factory
        self._on_watch_failure = on_watch_failure
        self._client: Optional[ControlPlaneClient] = None
        self._swap_lock = asyncio.Lock()
        self._holders = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._stop_event = asyncio.Event()
        self._watch_task: Optional[asyncio.Task] = None

    @classmethod
    async def create(cls, kubeconfig_path: Path, **kwargs) -> Tuple["ClientProvider", str]:
        """Build a provider and its default namespace, and start the watch."""
        provider = cls(kubeconfig_path, **kwargs)
        logger.info(f"Creating client provider for {provider.kubeconfig_path}")

        config = await provider._load_config()
        namespace = resolve_namespace(config, provider.kubeconfig_path)
        await provider._set_client(config)
        provider.start_watch()

        return provider, namespace

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[ControlPlaneClient]:
        """Hold the live client for the duration of the block.

        Holders share the client. It is not replaced or closed until the last
        holder leaves the block.
        """
        # Passing through the swap lock queues new holders behind a pending swap
        async with self._swap_lock:
            self._holders += 1
            self._idle.clear()
        try:
            yield self._client
        finally:
            self._holders -= 1
            if self._holders == 0:
                self._idle.set()

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        async with self._swap_lock:
            await self._idle.wait()
            yield

    async def _load_config(self) -> ClientConfig:
        return await asyncio.to_thread(load_client_config, self.kubeconfig_path)

    async def _set_client(self, config: ClientConfig):
        # Build before taking the swap so holders never see a half-built client
        try:
            new_client = self._client_factory(config, self.request_timeout)
        except Exception as e:
            raise ClientConstructionError(
                f"unable to build metal cluster client ({e})", str(self.kubeconfig_path)
            ) from e

        async with self._exclusive():
            old_client, self._client = self._client, new_client
        if old_client is not None:
            await old_client.aclose()

    async def reload(self) -> bool:
        """Rebuild the client from the kubeconfig, keeping the old one on failure."""
        try:
            config = await self._load_config()
            await self._set_client(config)
        except CredentialError as e:
            logger.error(f"Couldn't update metal client after kubeconfig change: {e}")
            return False
        logger.info("Change of kubeconfig was handled successfully")
        return True

    def start_watch(self, stop_event: Optional[asyncio.Event] = None):
        """Start watching the kubeconfig directory in the background."""
        watch_dir = self.kubeconfig_path.parent
        if not watch_dir.is_dir():
            raise CredentialWatchError("unable to add kubeconfig directory to watcher", str(watch_dir))
        if stop_event is not None:
            self._stop_event = stop_event
        self._watch_task = asyncio.create_task(self._watch_loop(watch_dir))

    async def _watch_loop(self, watch_dir: Path):
        """Reload the client whenever the kubeconfig file changes."""
        logger.info(f"Watching {watch_dir}")
        try:
            async for changes in awatch(watch_dir, stop_event=self._stop_event):
                paths = {Path(path) for _, path in changes}
                logger.debug(f"Kubeconfig directory events: {sorted(str(p) for p in paths)}")
                if self.kubeconfig_path not in paths:
                    continue
                await self.reload()
        except Exception as e:
            logger.critical(f"Kubeconfig watcher failed: {e}", exc_info=True)
            self._on_watch_failure(e)
        finally:
            logger.info("Kubeconfig watcher loop ended")

    async def close(self):
        """Stop the watch and close the live client."""
        self._stop_event.set()
        if self._watch_task is not None:
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None
        async with self._exclusive():
            if self._client is not None:
                await self._client.aclose()
                self._client = None
