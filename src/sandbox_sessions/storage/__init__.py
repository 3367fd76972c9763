"""Storage layer."""

from sandbox_sessions.storage.session_store import SessionStore

__all__ = ["SessionStore"]
