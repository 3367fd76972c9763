"""Sandbox provider implementations."""

from sandbox_sessions.providers.base import SandboxProvider
from sandbox_sessions.providers.docker_provider import DockerSandboxProvider

__all__ = ["DockerSandboxProvider", "SandboxProvider"]
