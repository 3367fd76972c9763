"""Keystroke control of the bundler console running in a sandbox tmux session."""

from __future__ import annotations

import structlog

from sandbox_sessions.config import settings
from sandbox_sessions.exceptions import SandboxProviderError
from sandbox_sessions.models.sandbox import (
    ProbeOutcome,
    ReloadFailure,
    ReloadResult,
    SandboxHandle,
)
from sandbox_sessions.providers.base import SandboxProvider

logger = structlog.get_logger()

# tmux has-session exits 1 both when the session is missing and when no
# tmux server is running at all; both mean "absent".
TMUX_ABSENT_EXIT_CODE = 1

RELOAD_KEYS = ("r", "Enter")


class ControlChannel:
    """Sends the reload key sequence to the named tmux session.

    At most one signal per call and no retries. The reload itself is not
    recorded anywhere; callers append their own audit event.
    """

    def __init__(
        self,
        provider: SandboxProvider,
        session_name: str | None = None,
        command_timeout: float | None = None,
    ) -> None:
        self.provider = provider
        self.session_name = session_name or settings.control_session_name
        self.command_timeout = (
            command_timeout if command_timeout is not None else settings.sandbox_command_timeout
        )

    async def probe(self, handle: SandboxHandle) -> ProbeOutcome:
        """Check whether the control tmux session exists."""
        try:
            result = await self.provider.run_command(
                handle,
                ["tmux", "has-session", "-t", self.session_name],
                timeout=self.command_timeout,
            )
        except SandboxProviderError as e:
            logger.warning(
                "tmux probe could not run",
                sandbox_id=handle.sandbox_id,
                session_name=self.session_name,
                error=str(e),
            )
            return ProbeOutcome.PROBE_ERROR

        if result.succeeded:
            return ProbeOutcome.PRESENT
        if result.exit_code == TMUX_ABSENT_EXIT_CODE:
            return ProbeOutcome.ABSENT

        logger.warning(
            "tmux probe failed",
            sandbox_id=handle.sandbox_id,
            session_name=self.session_name,
            exit_code=result.exit_code,
            stderr=result.stderr[:200],
        )
        return ProbeOutcome.PROBE_ERROR

    async def trigger_reload(self, handle: SandboxHandle) -> ReloadResult:
        """Press "r" then Enter in the bundler console.

        ABSENT and PROBE_ERROR both surface as NO_SESSION; the probe field
        keeps the distinction.
        """
        probe = await self.probe(handle)
        if probe != ProbeOutcome.PRESENT:
            logger.info(
                "Control session not running",
                sandbox_id=handle.sandbox_id,
                session_name=self.session_name,
                probe=probe.value,
            )
            return ReloadResult(ok=False, reason=ReloadFailure.NO_SESSION, probe=probe)

        try:
            result = await self.provider.run_command(
                handle,
                ["tmux", "send-keys", "-t", self.session_name, *RELOAD_KEYS],
                timeout=self.command_timeout,
            )
        except SandboxProviderError as e:
            logger.warning("Failed to send reload keys", sandbox_id=handle.sandbox_id, error=str(e))
            return ReloadResult(ok=False, reason=ReloadFailure.DELIVERY_FAILED, probe=probe)

        if not result.succeeded:
            logger.warning(
                "Failed to send reload keys",
                sandbox_id=handle.sandbox_id,
                exit_code=result.exit_code,
                stderr=result.stderr[:200],
            )
            return ReloadResult(ok=False, reason=ReloadFailure.DELIVERY_FAILED, probe=probe)

        logger.info(
            "Reload keys sent",
            sandbox_id=handle.sandbox_id,
            session_name=self.session_name,
        )
        return ReloadResult(ok=True, probe=probe)
