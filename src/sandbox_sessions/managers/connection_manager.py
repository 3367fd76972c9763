"""Reconnection to previously created sandboxes."""

from __future__ import annotations

import structlog

from sandbox_sessions.exceptions import (
    ProviderAuthError,
    ProviderResponseError,
    SandboxConnectionFailed,
    SandboxNotFoundError,
    SandboxUnavailableError,
)
from sandbox_sessions.models.sandbox import ConnectResult, SandboxHandle, SandboxState
from sandbox_sessions.providers.base import SandboxProvider
from sandbox_sessions.validation import validate_sandbox_id

logger = structlog.get_logger()


class SandboxConnectionManager:
    """Classifies reconnection attempts as READY or IDLE.

    A sandbox that is gone or unreachable is the normal "nothing running"
    case and comes back as IDLE, never as an exception. Only provider faults
    (bad credentials, malformed responses) raise SandboxConnectionFailed.
    Session state is never touched here.
    """

    def __init__(self, provider: SandboxProvider) -> None:
        self.provider = provider

    async def connect(self, sandbox_id: str) -> ConnectResult:
        """Try to reconnect to a sandbox.

        No timeout is added on top of the provider's own.

        Raises:
            InvalidRequestError: Empty or malformed id; raised before any remote call.
            SandboxConnectionFailed: Provider fault (state FAILED).
        """
        handle = await self.open(sandbox_id)
        if handle is None:
            return ConnectResult(state=SandboxState.IDLE)
        return ConnectResult(state=SandboxState.READY, live_id=handle.sandbox_id)

    async def open(self, sandbox_id: str) -> SandboxHandle | None:
        """Like connect(), but return the live handle, or None when IDLE."""
        validate_sandbox_id(sandbox_id)

        try:
            handle = await self.provider.connect(sandbox_id)
        except (SandboxNotFoundError, SandboxUnavailableError) as e:
            logger.info("Sandbox not reachable", sandbox_id=sandbox_id, reason=str(e))
            return None
        except (ProviderAuthError, ProviderResponseError) as e:
            logger.error(
                "Sandbox provider failure",
                sandbox_id=sandbox_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise SandboxConnectionFailed(sandbox_id, str(e)) from e

        logger.debug("Sandbox reachable", sandbox_id=sandbox_id)
        return handle
