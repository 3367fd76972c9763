"""Tests for DockerSandboxProvider with a mocked Docker client."""

from __future__ import annotations

import time
from unittest.mock import MagicMock, patch

import pytest
import requests
from docker.errors import APIError, ImageNotFound, NotFound

from sandbox_sessions.exceptions import (
    ProviderAuthError,
    ProviderResponseError,
    SandboxNotFoundError,
    SandboxUnavailableError,
)
from sandbox_sessions.managers import ControlChannel
from sandbox_sessions.models.sandbox import ProbeOutcome, ReloadFailure, SandboxHandle
from sandbox_sessions.providers.docker_provider import MANAGED_LABEL, DockerSandboxProvider


def create_mock_container(container_id: str = "c0ffee123456789", status: str = "running"):
    container = MagicMock()
    container.id = container_id
    container.status = status
    container.exec_run.return_value = MagicMock(exit_code=0, output=(b"ok\n", None))
    return container


def api_error(status_code: int, explanation: str = "error") -> APIError:
    return APIError(
        "docker error",
        response=MagicMock(status_code=status_code),
        explanation=explanation,
    )


@pytest.fixture
def mock_docker_client() -> MagicMock:
    client = MagicMock()
    client.containers.run.return_value = create_mock_container()
    client.containers.get.return_value = create_mock_container()
    return client


@pytest.fixture
def provider(mock_docker_client: MagicMock) -> DockerSandboxProvider:
    return DockerSandboxProvider(client=mock_docker_client)


class TestInit:
    """Tests for client construction."""

    def test_uses_environment_by_default(self):
        mock_client = MagicMock()
        with patch("docker.from_env", return_value=mock_client) as from_env:
            provider = DockerSandboxProvider()
        from_env.assert_called_once()
        assert provider.client is mock_client


class TestCreate:
    """Tests for create()."""

    @pytest.mark.asyncio
    async def test_starts_labelled_container(
        self, provider: DockerSandboxProvider, mock_docker_client: MagicMock
    ):
        handle = await provider.create()

        assert handle.sandbox_id == "c0ffee123456789"
        kwargs = mock_docker_client.containers.run.call_args.kwargs
        assert kwargs["detach"] is True
        assert kwargs["labels"] == {MANAGED_LABEL: "true"}

    @pytest.mark.asyncio
    async def test_missing_image(
        self, provider: DockerSandboxProvider, mock_docker_client: MagicMock
    ):
        mock_docker_client.containers.run.side_effect = ImageNotFound("no image")

        with pytest.raises(ProviderResponseError, match="not found"):
            await provider.create()


class TestConnect:
    """Tests for connect() error mapping."""

    @pytest.mark.asyncio
    async def test_running_container(self, provider: DockerSandboxProvider):
        handle = await provider.connect("c0ffee123456789")
        assert handle.sandbox_id == "c0ffee123456789"
        assert handle.native is not None

    @pytest.mark.asyncio
    async def test_not_found(self, provider: DockerSandboxProvider, mock_docker_client: MagicMock):
        mock_docker_client.containers.get.side_effect = NotFound("gone")

        with pytest.raises(SandboxNotFoundError):
            await provider.connect("sbx-1")

    @pytest.mark.asyncio
    async def test_stopped_container_unavailable(
        self, provider: DockerSandboxProvider, mock_docker_client: MagicMock
    ):
        mock_docker_client.containers.get.return_value = create_mock_container(status="exited")

        with pytest.raises(SandboxUnavailableError, match="exited"):
            await provider.connect("sbx-1")

    @pytest.mark.asyncio
    async def test_daemon_unreachable(
        self, provider: DockerSandboxProvider, mock_docker_client: MagicMock
    ):
        mock_docker_client.containers.get.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(SandboxUnavailableError, match="Docker unreachable"):
            await provider.connect("sbx-1")

    @pytest.mark.asyncio
    async def test_auth_error(self, provider: DockerSandboxProvider, mock_docker_client: MagicMock):
        mock_docker_client.containers.get.side_effect = api_error(403, "forbidden")

        with pytest.raises(ProviderAuthError):
            await provider.connect("sbx-1")

    @pytest.mark.asyncio
    async def test_server_error(
        self, provider: DockerSandboxProvider, mock_docker_client: MagicMock
    ):
        mock_docker_client.containers.get.side_effect = api_error(500, "daemon exploded")

        with pytest.raises(ProviderResponseError, match="daemon exploded"):
            await provider.connect("sbx-1")


class TestRunCommand:
    """Tests for run_command()."""

    @pytest.mark.asyncio
    async def test_success(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        handle = SandboxHandle(sandbox_id=container.id, native=container)

        result = await provider.run_command(handle, ["tmux", "has-session", "-t", "metro"])

        assert result.succeeded
        assert result.stdout == "ok\n"
        container.exec_run.assert_called_once_with(
            cmd=["tmux", "has-session", "-t", "metro"], demux=True
        )

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_returned(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.exec_run.return_value = MagicMock(exit_code=1, output=(None, b"no session\n"))
        handle = SandboxHandle(sandbox_id=container.id, native=container)

        result = await provider.run_command(handle, ["tmux", "has-session", "-t", "metro"])

        assert result.exit_code == 1
        assert result.stderr == "no session\n"

    @pytest.mark.asyncio
    async def test_timeout(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.exec_run.side_effect = lambda **_: time.sleep(0.3)
        handle = SandboxHandle(sandbox_id=container.id, native=container)

        result = await provider.run_command(handle, ["sleep", "10"], timeout=0.05)

        assert result.exit_code == -1
        assert "timed out" in result.stderr

    @pytest.mark.asyncio
    async def test_reconnects_without_native_handle(
        self, provider: DockerSandboxProvider, mock_docker_client: MagicMock
    ):
        result = await provider.run_command(SandboxHandle(sandbox_id="c0ffee123456789"), ["true"])

        assert result.succeeded
        mock_docker_client.containers.get.assert_called_once_with("c0ffee123456789")

    @pytest.mark.asyncio
    async def test_container_vanished(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.exec_run.side_effect = NotFound("gone")
        handle = SandboxHandle(sandbox_id=container.id, native=container)

        with pytest.raises(SandboxNotFoundError):
            await provider.run_command(handle, ["true"])

    @pytest.mark.asyncio
    async def test_daemon_lost_during_exec(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.exec_run.side_effect = requests.exceptions.ConnectionError("daemon went away")
        handle = SandboxHandle(sandbox_id=container.id, native=container)

        with pytest.raises(SandboxUnavailableError, match="Docker unreachable"):
            await provider.run_command(handle, ["tmux", "has-session", "-t", "metro"])


class TestKill:
    """Tests for kill()."""

    @pytest.mark.asyncio
    async def test_removes_container(self, provider: DockerSandboxProvider):
        container = create_mock_container()

        await provider.kill(SandboxHandle(sandbox_id=container.id, native=container))

        container.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_already_gone_is_ignored(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.remove.side_effect = NotFound("gone")

        await provider.kill(SandboxHandle(sandbox_id=container.id, native=container))

    @pytest.mark.asyncio
    async def test_daemon_lost_during_remove(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.remove.side_effect = requests.exceptions.ConnectionError("daemon went away")

        with pytest.raises(SandboxUnavailableError):
            await provider.kill(SandboxHandle(sandbox_id=container.id, native=container))


class TestControlChannelOverDocker:
    """Control channel behaviour when the Docker transport fails mid-command."""

    @pytest.mark.asyncio
    async def test_reload_reports_no_session(self, provider: DockerSandboxProvider):
        container = create_mock_container()
        container.exec_run.side_effect = requests.exceptions.ConnectionError("daemon went away")
        handle = SandboxHandle(sandbox_id=container.id, native=container)

        result = await ControlChannel(provider, session_name="metro").trigger_reload(handle)

        assert result.ok is False
        assert result.reason == ReloadFailure.NO_SESSION
        assert result.probe == ProbeOutcome.PROBE_ERROR
