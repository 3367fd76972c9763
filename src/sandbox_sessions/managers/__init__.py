"""Sandbox connection, control and coordination."""

from sandbox_sessions.managers.connection_manager import SandboxConnectionManager
from sandbox_sessions.managers.control_channel import ControlChannel
from sandbox_sessions.managers.session_locks import SessionLocks

__all__ = ["ControlChannel", "SandboxConnectionManager", "SessionLocks"]
