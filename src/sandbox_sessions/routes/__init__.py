"""Sandbox sessions service routes."""

from sandbox_sessions.routes.agents import router as agents_router
from sandbox_sessions.routes.health import router as health_router
from sandbox_sessions.routes.sandbox import router as sandbox_router

__all__ = ["agents_router", "health_router", "sandbox_router"]
