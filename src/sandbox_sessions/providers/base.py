"""Abstract sandbox provider interface."""

from abc import ABC, abstractmethod

from sandbox_sessions.models.sandbox import CommandResult, SandboxHandle


class SandboxProvider(ABC):
    """Create, reconnect to and run commands in remote sandboxes.

    Sandbox identifiers are opaque provider-assigned strings. A sandbox that
    is gone never comes back under the same identifier.
    """

    @abstractmethod
    async def create(self) -> SandboxHandle:
        """Start a new sandbox and return a live handle to it."""

    @abstractmethod
    async def connect(self, sandbox_id: str) -> SandboxHandle:
        """Re-establish a handle to an existing sandbox.

        Raises:
            SandboxNotFoundError: The sandbox no longer exists.
            SandboxUnavailableError: The sandbox exists but cannot be reached.
            ProviderAuthError: The provider rejected our credentials.
            ProviderResponseError: Any other provider fault.
        """

    @abstractmethod
    async def run_command(
        self,
        handle: SandboxHandle,
        argv: list[str],
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command inside the sandbox and return its exit status.

        A non-zero exit is reported in the result, not raised.

        Raises:
            SandboxProviderError: The command could not be executed at all.
        """

    @abstractmethod
    async def kill(self, handle: SandboxHandle) -> None:
        """Destroy the sandbox."""
