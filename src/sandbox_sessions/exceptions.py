"""Custom exception classes for the sandbox sessions service."""


class SandboxSessionsError(Exception):
    """Base class for all service errors."""


class ConfigurationError(ValueError):
    """Raised when configuration validation fails."""


class InvalidRequestError(SandboxSessionsError, ValueError):
    """Raised when a required field is missing or invalid.

    Always raised before any remote call is attempted.
    """


class SessionAccessDeniedError(SandboxSessionsError):
    """Raised when a session is missing or owned by someone else.

    The message is identical in both cases so callers cannot probe for
    sessions belonging to other users.
    """

    def __init__(self) -> None:
        super().__init__("Session not found or access denied")


class StorageError(SandboxSessionsError):
    """Raised when a storage round-trip fails."""


class SandboxProviderError(SandboxSessionsError):
    """Base class for errors reported by the sandbox provider."""

    def __init__(self, sandbox_id: str, message: str) -> None:
        self.sandbox_id = sandbox_id
        super().__init__(message)


class SandboxNotFoundError(SandboxProviderError):
    """The provider has no sandbox with this identifier."""

    def __init__(self, sandbox_id: str) -> None:
        super().__init__(sandbox_id, f"Sandbox {sandbox_id} not found")


class SandboxUnavailableError(SandboxProviderError):
    """The sandbox exists but is not running or did not answer in time."""


class ProviderAuthError(SandboxProviderError):
    """The provider rejected our credentials."""


class ProviderResponseError(SandboxProviderError):
    """The provider returned an error or malformed response."""


class SandboxConnectionFailed(SandboxSessionsError):
    """Raised by the connection manager for the FAILED outcome.

    Unlike an unreachable sandbox (IDLE), this is a genuine fault such as a
    provider auth failure and must be handled by the caller.
    """

    def __init__(self, sandbox_id: str, reason: str) -> None:
        self.sandbox_id = sandbox_id
        self.reason = reason
        super().__init__(f"Failed to connect to sandbox {sandbox_id}: {reason}")
