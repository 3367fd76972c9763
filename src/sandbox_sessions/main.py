"""Sandbox Sessions Service - agent sessions, sandboxes and cost accounting."""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sandbox_sessions import __version__
from sandbox_sessions.config import settings
from sandbox_sessions.database import close_database, init_database
from sandbox_sessions.deps import ServiceSingleton
from sandbox_sessions.exceptions import (
    InvalidRequestError,
    SandboxConnectionFailed,
    SessionAccessDeniedError,
    StorageError,
)
from sandbox_sessions.routes import agents_router, health_router, sandbox_router
from sandbox_sessions.sentry import SentryConfig, configure_logging, init_sentry

SERVICE_NAME = "sandbox-sessions"
INTERNAL_ERROR_MESSAGE = "An internal error occurred. Please try again later."

init_sentry(
    SentryConfig(
        service_name=SERVICE_NAME,
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"{SERVICE_NAME}@{__version__}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )
)

logger = configure_logging(SERVICE_NAME)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting sandbox sessions service", environment=settings.environment)
    await init_database()

    yield

    logger.info("Shutting down sandbox sessions service")
    await close_database()
    ServiceSingleton.clear_instance()


app = FastAPI(
    title="Sandbox Sessions Service",
    description="Agent sessions bound to remote development sandboxes",
    version=__version__,
    lifespan=lifespan,
)


def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and return a generic 500 without internal details."""
    error_id = str(uuid.uuid4())[:8]
    logger.exception(
        "Unhandled exception",
        error_id=error_id,
        path=str(request.url.path),
        method=request.method,
        exc_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": INTERNAL_ERROR_MESSAGE, "error_id": error_id},
    )


@app.exception_handler(InvalidRequestError)
async def _invalid_request_handler(_request: Request, exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(SessionAccessDeniedError)
async def _access_denied_handler(_request: Request, exc: SessionAccessDeniedError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SandboxConnectionFailed)
async def _connection_failed_handler(
    request: Request, exc: SandboxConnectionFailed
) -> JSONResponse:
    return _internal_error(request, exc)


@app.exception_handler(StorageError)
async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return _internal_error(request, exc)


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all so stack traces and internal paths never reach the client."""
    return _internal_error(request, exc)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Origin", "X-User-ID"],
)

app.include_router(health_router)
app.include_router(agents_router)
app.include_router(sandbox_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"service": SERVICE_NAME, "version": __version__, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sandbox_sessions.main:app",
        host="0.0.0.0",  # noqa: S104
        port=3004,
        reload=settings.environment == "development",
    )
