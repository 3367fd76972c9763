"""Dependency injection for the sandbox sessions service."""

from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException, status

from sandbox_sessions.config import settings
from sandbox_sessions.cost import CostAccountant, build_pricing_table
from sandbox_sessions.database.connection import get_session_factory
from sandbox_sessions.event_log import EventLog
from sandbox_sessions.managers import ControlChannel, SandboxConnectionManager, SessionLocks
from sandbox_sessions.orchestrator import SessionOrchestrator
from sandbox_sessions.providers import DockerSandboxProvider, SandboxProvider
from sandbox_sessions.storage import SessionStore

logger = structlog.get_logger()


class ServiceSingleton:
    """Singleton holder for the orchestrator and its collaborators."""

    _store: SessionStore | None = None
    _provider: SandboxProvider | None = None
    _accountant: CostAccountant | None = None
    _orchestrator: SessionOrchestrator | None = None

    @classmethod
    def get_store(cls) -> SessionStore:
        """Get or create the session store using the service database credential."""
        if cls._store is None:
            cls._store = SessionStore(get_session_factory())
        return cls._store

    @classmethod
    def get_provider(cls) -> SandboxProvider:
        """Get or create the sandbox provider."""
        if cls._provider is None:
            cls._provider = DockerSandboxProvider()
        return cls._provider

    @classmethod
    def get_accountant(cls) -> CostAccountant:
        """Get or create the cost accountant from built-in and configured pricing."""
        if cls._accountant is None:
            pricing = build_pricing_table(
                settings.pricing_overrides,
                default_model=settings.default_model,
            )
            cls._accountant = CostAccountant(pricing)
            logger.info(
                "Pricing table loaded",
                models=pricing.models,
                default_model=pricing.default_model,
            )
        return cls._accountant

    @classmethod
    def get_orchestrator(cls) -> SessionOrchestrator:
        """Get or create the session orchestrator."""
        if cls._orchestrator is None:
            store = cls.get_store()
            provider = cls.get_provider()
            cls._orchestrator = SessionOrchestrator(
                store=store,
                event_log=EventLog(store),
                provider=provider,
                connections=SandboxConnectionManager(provider),
                control=ControlChannel(provider),
                accountant=cls.get_accountant(),
                locks=SessionLocks(),
            )
        return cls._orchestrator

    @classmethod
    def clear_instance(cls) -> None:
        """Clear the singleton instances."""
        cls._store = None
        cls._provider = None
        cls._accountant = None
        cls._orchestrator = None


def get_orchestrator() -> SessionOrchestrator:
    """Get the session orchestrator instance."""
    return ServiceSingleton.get_orchestrator()


Orchestrator = Annotated[SessionOrchestrator, Depends(get_orchestrator)]


async def get_current_user_id(
    orchestrator: Orchestrator,
    x_user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> str:
    """Resolve the durable user id for the verified identity in X-User-ID.

    The auth gateway in front of this service verifies the user and passes
    the identity provider's subject id in this header.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return await orchestrator.resolve_user(x_user_id)


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
