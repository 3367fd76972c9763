"""Sentry and structured logging setup for the sandbox sessions service."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

if TYPE_CHECKING:
    from sentry_sdk.types import Event

EventCallback = Callable[[dict[str, Any], dict[str, Any]], dict[str, Any] | None]

DEFAULT_TRACES_SAMPLE_RATE = 0.2
DEFAULT_PROFILES_SAMPLE_RATE = 0.1
DEV_TRACES_SAMPLE_RATE = 1.0

SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key", "x-service-token")
HEALTH_TRANSACTIONS = ("/health", "/ready")


@dataclass
class SentryConfig:
    """Configuration for Sentry SDK initialization."""

    service_name: str
    dsn: str | None = None
    environment: str | None = None
    release: str | None = None
    traces_sample_rate: float | None = None
    profiles_sample_rate: float | None = None
    enable_db_tracing: bool = True


def configure_logging(
    service_name: str,
    log_level: int = logging.INFO,
    json_format: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog on top of the standard library root logger.

    Call once at service startup, after init_sentry().

    Args:
        service_name: Name of the service for log context
        log_level: Minimum log level (default: INFO)
        json_format: Use JSON output (True) or console format (False).
                     If None, JSON is used everywhere except development.

    Returns:
        Configured structlog logger
    """
    if json_format is None:
        environment = os.environ.get("SANDBOX_SESSIONS_ENVIRONMENT", "development")
        json_format = environment != "development"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates on hot reload
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _add_sentry_breadcrumb,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(service_name))


def _add_sentry_breadcrumb(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Record every structlog event as a Sentry breadcrumb."""
    standard_keys = {"event", "level", "timestamp", "logger"}
    extra_data = {k: v for k, v in event_dict.items() if k not in standard_keys}

    sentry_sdk.add_breadcrumb(
        message=str(event_dict.get("event", "")),
        category="log",
        level=event_dict.get("level", "info"),
        data=extra_data or None,
    )
    return event_dict


def _scrub_event(event: Event, _hint: dict[str, Any]) -> Event | None:
    """Strip credentials from outgoing Sentry events."""
    request = event.get("request")
    if request is not None:
        headers = request.get("headers")
        if isinstance(headers, dict):
            for header in SENSITIVE_HEADERS:
                if header in headers:
                    headers[header] = "[Filtered]"
    return event


def _drop_health_transactions(event: Event, _hint: dict[str, Any]) -> Event | None:
    if event.get("transaction", "") in HEALTH_TRANSACTIONS:
        return None
    return event


def init_sentry(config: SentryConfig) -> bool:
    """Initialize the Sentry SDK.

    Returns:
        True if Sentry was initialized, False if no DSN was provided
    """
    effective_dsn = config.dsn or os.environ.get("SENTRY_DSN")
    if not effective_dsn:
        return False

    effective_env = config.environment or "development"
    is_production = effective_env == "production"

    traces_rate = config.traces_sample_rate
    if traces_rate is None:
        traces_rate = DEFAULT_TRACES_SAMPLE_RATE if is_production else DEV_TRACES_SAMPLE_RATE
    profiles_rate = config.profiles_sample_rate
    if profiles_rate is None:
        profiles_rate = DEFAULT_PROFILES_SAMPLE_RATE if is_production else DEV_TRACES_SAMPLE_RATE

    integrations: list[Any] = [
        StarletteIntegration(transaction_style="endpoint"),
        FastApiIntegration(transaction_style="endpoint"),
        AsyncioIntegration(),
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
    ]
    if config.enable_db_tracing:
        integrations.append(SqlalchemyIntegration())

    sentry_sdk.init(
        dsn=effective_dsn,
        environment=effective_env,
        release=config.release or f"{config.service_name}@0.1.0",
        traces_sample_rate=traces_rate,
        profiles_sample_rate=profiles_rate,
        integrations=integrations,
        before_send=_scrub_event,
        before_send_transaction=_drop_health_transactions,
        send_default_pii=False,
        attach_stacktrace=True,
        server_name=config.service_name,
        ignore_errors=["asyncio.CancelledError", "KeyboardInterrupt", "SystemExit"],
    )
    sentry_sdk.set_tag("service", config.service_name)
    return True
