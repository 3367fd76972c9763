"""Docker-backed sandbox provider.

Each sandbox is a long-running container started from the sandbox image.
The container id is the sandbox identifier.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import docker
import structlog
from docker.errors import APIError, ImageNotFound, NotFound

from sandbox_sessions.config import settings
from sandbox_sessions.exceptions import (
    ProviderAuthError,
    ProviderResponseError,
    SandboxNotFoundError,
    SandboxUnavailableError,
)
from sandbox_sessions.models.sandbox import CommandResult, SandboxHandle
from sandbox_sessions.providers.base import SandboxProvider

if TYPE_CHECKING:
    from docker import DockerClient
    from docker.models.containers import Container

logger = structlog.get_logger()

MANAGED_LABEL = "sandbox-sessions.managed"
AUTH_STATUS_CODES = (401, 403)


def _classify_api_error(sandbox_id: str, error: APIError) -> Exception:
    """Map a Docker API error onto the provider error hierarchy."""
    if error.status_code in AUTH_STATUS_CODES:
        return ProviderAuthError(sandbox_id, f"Docker rejected credentials: {error.explanation}")
    return ProviderResponseError(sandbox_id, f"Docker API error: {error.explanation or error}")


class DockerSandboxProvider(SandboxProvider):
    """Sandbox provider using Docker containers.

    The Docker SDK is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, client: DockerClient | None = None) -> None:
        if client is not None:
            self.client = client
        elif settings.docker_host:
            self.client = docker.DockerClient(base_url=settings.docker_host)
        else:
            self.client = docker.from_env()
        logger.info(
            "DockerSandboxProvider initialized",
            docker_host=settings.docker_host or "env",
            sandbox_image=settings.sandbox_image,
        )

    async def create(self) -> SandboxHandle:
        try:
            container: Container = await asyncio.to_thread(
                self.client.containers.run,
                settings.sandbox_image,
                command=["sleep", "infinity"],
                detach=True,
                working_dir=settings.sandbox_workdir,
                labels={MANAGED_LABEL: "true"},
            )
        except ImageNotFound as e:
            raise ProviderResponseError(
                "", f"Sandbox image {settings.sandbox_image} not found"
            ) from e
        except APIError as e:
            raise _classify_api_error("", e) from e
        except OSError as e:
            raise SandboxUnavailableError("", f"Docker unreachable: {e}") from e

        logger.info("Sandbox container created", sandbox_id=container.id[:12])
        return SandboxHandle(sandbox_id=container.id, native=container)

    async def connect(self, sandbox_id: str) -> SandboxHandle:
        try:
            container: Container = await asyncio.to_thread(self.client.containers.get, sandbox_id)
        except NotFound as e:
            raise SandboxNotFoundError(sandbox_id) from e
        except APIError as e:
            raise _classify_api_error(sandbox_id, e) from e
        except OSError as e:
            # Connection refused / read timeout from the Docker transport
            raise SandboxUnavailableError(sandbox_id, f"Docker unreachable: {e}") from e

        if container.status != "running":
            raise SandboxUnavailableError(
                sandbox_id, f"Sandbox {sandbox_id} is {container.status}"
            )

        return SandboxHandle(sandbox_id=container.id, native=container)

    async def run_command(
        self,
        handle: SandboxHandle,
        argv: list[str],
        timeout: float | None = None,
    ) -> CommandResult:
        container = handle.native
        if container is None:
            container = (await self.connect(handle.sandbox_id)).native

        exec_call: Any = asyncio.to_thread(container.exec_run, cmd=argv, demux=True)
        try:
            if timeout is not None:
                exec_result = await asyncio.wait_for(exec_call, timeout=timeout)
            else:
                exec_result = await exec_call
        except TimeoutError:
            logger.warning(
                "Sandbox command timed out",
                sandbox_id=handle.sandbox_id[:12],
                command=argv[:3],
                timeout=timeout,
            )
            return CommandResult(
                exit_code=-1,
                stderr=f"Command timed out after {timeout} seconds",
            )
        except NotFound as e:
            raise SandboxNotFoundError(handle.sandbox_id) from e
        except APIError as e:
            raise _classify_api_error(handle.sandbox_id, e) from e
        except OSError as e:
            raise SandboxUnavailableError(handle.sandbox_id, f"Docker unreachable: {e}") from e

        stdout_bytes, stderr_bytes = exec_result.output or (None, None)
        return CommandResult(
            exit_code=exec_result.exit_code if exec_result.exit_code is not None else -1,
            stdout=stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else "",
            stderr=stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else "",
        )

    async def kill(self, handle: SandboxHandle) -> None:
        container = handle.native
        try:
            if container is None:
                container = await asyncio.to_thread(self.client.containers.get, handle.sandbox_id)
            await asyncio.to_thread(container.remove, force=True)
        except NotFound:
            logger.info("Sandbox already gone", sandbox_id=handle.sandbox_id[:12])
            return
        except APIError as e:
            raise _classify_api_error(handle.sandbox_id, e) from e
        except OSError as e:
            raise SandboxUnavailableError(handle.sandbox_id, f"Docker unreachable: {e}") from e

        logger.info("Sandbox container removed", sandbox_id=handle.sandbox_id[:12])
