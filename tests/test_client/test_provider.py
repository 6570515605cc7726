"""Tests for the hot-reloading ClientProvider."""

import asyncio
import base64
from unittest.mock import Mock, patch

import pytest
from watchfiles import Change

from metalprov.client.provider import ClientProvider, _exit_on_watch_failure
from metalprov.errors import (
    ClientConstructionError,
    CredentialParseError,
    CredentialReadError,
    CredentialWatchError,
    NamespaceResolutionError,
)


def kubeconfig(token="token-0", namespace="metal-ns", ca_data=None):
    cluster_extra = f"\n    certificate-authority-data: {ca_data}" if ca_data else ""
    namespace_line = f"\n    namespace: {namespace}" if namespace else ""
    return f"""
apiVersion: v1
kind: Config
current-context: metal
clusters:
- name: metal-cluster
  cluster:
    server: https://127.0.0.1:6443{cluster_extra}
contexts:
- name: metal
  context:
    cluster: metal-cluster
    user: metal-user{namespace_line}
users:
- name: metal-user
  user:
    token: {token}
"""


class FakeClient:
    """Stands in for ControlPlaneClient."""

    def __init__(self, config):
        self.config = config
        self.closed = False

    async def aclose(self):
        self.closed = True


class FakeClientFactory:
    def __init__(self):
        self.clients = []

    def __call__(self, config, timeout):
        client = FakeClient(config)
        self.clients.append(client)
        return client


def fake_awatch(*batches, error=None):
    """Replacement for watchfiles.awatch yielding the given change batches."""
    async def _awatch(path, stop_event=None):
        for batch in batches:
            yield batch
        if error is not None:
            raise error
        await stop_event.wait()
    return _awatch


async def wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def kubeconfig_path(tmp_path):
    path = tmp_path / "kubeconfig"
    path.write_text(kubeconfig())
    return path


@pytest.fixture
def factory():
    return FakeClientFactory()


@pytest.mark.asyncio
class TestClientProviderCreate:
    """Test provider construction."""

    async def test_create(self, kubeconfig_path, factory):
        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, namespace = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            try:
                assert namespace == "metal-ns"
                async with provider.acquire() as client:
                    assert client is factory.clients[0]
                    assert client.config.token == "token-0"
            finally:
                await provider.close()

        assert factory.clients[0].closed

    async def test_missing_file(self, tmp_path, factory):
        with pytest.raises(CredentialReadError):
            await ClientProvider.create(tmp_path / "kubeconfig", client_factory=factory)

    async def test_malformed_file(self, tmp_path, factory):
        path = tmp_path / "kubeconfig"
        path.write_text("just a string")

        with pytest.raises(CredentialParseError):
            await ClientProvider.create(path, client_factory=factory)

    async def test_missing_namespace(self, tmp_path, factory):
        path = tmp_path / "kubeconfig"
        path.write_text(kubeconfig(namespace=None))

        with pytest.raises(NamespaceResolutionError):
            await ClientProvider.create(path, client_factory=factory)
        assert factory.clients == []

    async def test_unusable_certificate(self, tmp_path):
        path = tmp_path / "kubeconfig"
        path.write_text(kubeconfig(ca_data=base64.b64encode(b"not a certificate").decode()))

        with pytest.raises(ClientConstructionError):
            await ClientProvider.create(path)

    async def test_missing_watch_directory(self, tmp_path, factory):
        provider = ClientProvider(tmp_path / "missing" / "kubeconfig", client_factory=factory)

        with pytest.raises(CredentialWatchError):
            provider.start_watch()


@pytest.mark.asyncio
class TestClientProviderReload:
    """Test credential rotation."""

    async def test_reload_swaps_client(self, kubeconfig_path, factory):
        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            try:
                kubeconfig_path.write_text(kubeconfig(token="token-1"))

                assert await provider.reload() is True

                async with provider.acquire() as client:
                    assert client.config.token == "token-1"
                assert factory.clients[0].closed
                assert not factory.clients[1].closed
            finally:
                await provider.close()

    async def test_bad_rotation_keeps_client(self, kubeconfig_path, factory):
        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            try:
                kubeconfig_path.write_text("key: [unclosed")

                assert await provider.reload() is False

                async with provider.acquire() as client:
                    assert client is factory.clients[0]
                    assert not client.closed
            finally:
                await provider.close()

    async def test_failed_client_build_keeps_client(self, kubeconfig_path, factory):
        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            try:
                provider._client_factory = Mock(side_effect=ValueError("bad certificate"))

                assert await provider.reload() is False

                async with provider.acquire() as client:
                    assert client is factory.clients[0]
            finally:
                await provider.close()

    async def test_watch_reloads_on_kubeconfig_change(self, kubeconfig_path, factory):
        other = kubeconfig_path.parent / "unrelated"
        changes = fake_awatch(
            {(Change.modified, str(other))},
            {(Change.added, str(kubeconfig_path))},
        )

        with patch("metalprov.client.provider.awatch", changes):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            # The watch task has not run yet
            kubeconfig_path.write_text(kubeconfig(token="token-1"))
            try:
                await wait_until(lambda: len(factory.clients) == 2)
                await asyncio.sleep(0.05)
                assert len(factory.clients) == 2
                async with provider.acquire() as client:
                    assert client.config.token == "token-1"
            finally:
                await provider.close()

    async def test_watch_failure_is_fatal(self, kubeconfig_path, factory):
        on_failure = Mock()
        error = RuntimeError("inotify limit reached")

        with patch("metalprov.client.provider.awatch", fake_awatch(error=error)):
            provider, _ = await ClientProvider.create(
                kubeconfig_path, client_factory=factory, on_watch_failure=on_failure
            )
            try:
                await wait_until(lambda: on_failure.called)
                on_failure.assert_called_once_with(error)
            finally:
                await provider.close()

    async def test_concurrent_requests_during_rotation(self, kubeconfig_path, factory):
        """Requests never see a closed or missing client while rotations happen."""
        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)

            async def request():
                async with provider.acquire() as client:
                    assert client is not None
                    for _ in range(3):
                        await asyncio.sleep(0)
                        assert not client.closed
                        assert provider._client is client

            async def rotate():
                for i in range(1, 11):
                    kubeconfig_path.write_text(kubeconfig(token=f"token-{i}"))
                    assert await provider.reload()
                    await asyncio.sleep(0)

            try:
                await asyncio.gather(rotate(), *(request() for _ in range(100)))
            finally:
                await provider.close()

        assert len(factory.clients) == 11
        assert factory.clients[-1].config.token == "token-10"
        assert all(c.closed for c in factory.clients)

    async def test_rotation_through_watch_during_requests(self, kubeconfig_path, factory):
        """Rotations reported by the watcher never disturb running requests."""
        on_failure = Mock()

        async def rotating_watch(path, stop_event=None):
            for i in range(1, 11):
                kubeconfig_path.write_text(kubeconfig(token=f"token-{i}"))
                yield {(Change.modified, str(kubeconfig_path))}
                await asyncio.sleep(0)
            await stop_event.wait()

        with patch("metalprov.client.provider.awatch", rotating_watch):
            provider, _ = await ClientProvider.create(
                kubeconfig_path, client_factory=factory, on_watch_failure=on_failure
            )

            async def request():
                for _ in range(5):
                    async with provider.acquire() as client:
                        assert client is not None
                        await asyncio.sleep(0)
                        assert not client.closed
                        assert provider._client is client
                    await asyncio.sleep(0)

            try:
                await asyncio.gather(*(request() for _ in range(100)))
                await wait_until(
                    lambda: provider._client is not None and provider._client.config.token == "token-10"
                )
            finally:
                await provider.close()

        on_failure.assert_not_called()
        assert len(factory.clients) == 11
        assert all(c.closed for c in factory.clients)

    async def test_malformed_rotation_through_watch_keeps_client(self, kubeconfig_path, factory):
        """A structurally broken kubeconfig is a failed rotation, not a watcher failure."""
        on_failure = Mock()
        handled = asyncio.Event()

        async def broken_watch(path, stop_event=None):
            kubeconfig_path.write_text(
                "current-context: metal\ncontexts:\n- name: metal\n  context: oops-not-a-mapping\n"
            )
            yield {(Change.modified, str(kubeconfig_path))}
            handled.set()
            await stop_event.wait()

        with patch("metalprov.client.provider.awatch", broken_watch):
            provider, _ = await ClientProvider.create(
                kubeconfig_path, client_factory=factory, on_watch_failure=on_failure
            )
            try:
                await asyncio.wait_for(handled.wait(), 2.0)

                on_failure.assert_not_called()
                async with provider.acquire() as client:
                    assert client is factory.clients[0]
                    assert not client.closed
            finally:
                await provider.close()

        assert len(factory.clients) == 1


@pytest.mark.asyncio
class TestClientProviderAcquire:
    """Test shared access to the client."""

    async def test_holders_share_client(self, kubeconfig_path, factory):
        entered = []
        release = asyncio.Event()

        async def hold():
            async with provider.acquire() as client:
                entered.append(client)
                await release.wait()

        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            try:
                holders = [asyncio.create_task(hold()) for _ in range(3)]
                await wait_until(lambda: len(entered) == 3)
                release.set()
                await asyncio.gather(*holders)
            finally:
                await provider.close()

        assert entered == [factory.clients[0]] * 3

    async def test_swap_waits_for_holders(self, kubeconfig_path, factory):
        """A swap waits for current holders, and later holders wait for the swap."""
        held = asyncio.Event()
        release = asyncio.Event()

        async def hold():
            async with provider.acquire() as client:
                held.set()
                await release.wait()
                assert not client.closed
                return client

        async def hold_later():
            async with provider.acquire() as client:
                return client

        with patch("metalprov.client.provider.awatch", fake_awatch()):
            provider, _ = await ClientProvider.create(kubeconfig_path, client_factory=factory)
            try:
                holder = asyncio.create_task(hold())
                await held.wait()

                kubeconfig_path.write_text(kubeconfig(token="token-1"))
                rotation = asyncio.create_task(provider.reload())
                await wait_until(lambda: len(factory.clients) == 2)
                later = asyncio.create_task(hold_later())
                await asyncio.sleep(0.05)

                assert not rotation.done()
                assert not later.done()
                assert not factory.clients[0].closed

                release.set()

                assert await rotation is True
                assert await holder is factory.clients[0]
                assert await later is factory.clients[1]
                assert factory.clients[0].closed
            finally:
                await provider.close()

    async def test_structurally_malformed_file(self, tmp_path, factory):
        path = tmp_path / "kubeconfig"
        path.write_text("current-context: metal\ncontexts:\n- name: metal\n  context: oops-not-a-mapping\n")

        with pytest.raises(CredentialParseError):
            await ClientProvider.create(path, client_factory=factory)
        assert factory.clients == []


def test_default_watch_failure_exits():
    with pytest.raises(SystemExit):
        _exit_on_watch_failure(RuntimeError("boom"))
