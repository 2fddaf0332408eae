"""FastAPI application wiring for VoxBox.

``create_app`` builds the HTTP shell around the persistence core:

- Loads ``.env`` and configures logging (application + access logs).
- Builds the SQLAlchemy engine and session factory; a missing
  ``DATABASE_URL`` aborts startup with :class:`ConfigurationError`.
- Installs ``TenantContextMiddleware`` so every request is scoped to the
  tenant named by its host.
- Maps persistence errors to HTTP responses and exposes health, version and
  Prometheus metrics endpoints.

Run with ``uvicorn --factory voxbox.main:create_app``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import Engine

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .core.tenant_middleware import TenantContextMiddleware
from .models.session import get_engine, get_sessionmaker, init_schema
from .persistence import EntityNotFoundError, StorageError

logger = logging.getLogger("voxbox.main")


def _error_body(message: str, exc: Exception, status_code: int) -> dict[str, object]:
    error: dict[str, object] = {
        "message": message,
        "type": type(exc).__name__,
        "status_code": status_code,
    }
    if os.getenv("APP_DEBUG", "false").lower() == "true":
        error["details"] = str(exc)
    return {"error": error}


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(EntityNotFoundError)
    async def _not_found(request: Request, exc: EntityNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc)},
        )

    @app.exception_handler(StorageError)
    async def _storage_failure(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "Storage failure. Path: %s, Method: %s", request.url.path, request.method,
            exc_info=exc,
        )
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(
            status_code=code,
            content=_error_body("The request could not be saved.", exc, code),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception occurred. Path: %s, Method: %s, Query: %s, UserAgent: %s",
            request.url.path,
            request.method,
            request.url.query,
            request.headers.get("user-agent"),
            exc_info=exc,
        )
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(
            status_code=code,
            content=_error_body(
                "An unexpected error occurred. Please try again later.", exc, code
            ),
        )


def create_app(database_url: str | None = None, *, engine: Engine | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        database_url: Overrides ``DATABASE_URL``.
        engine: Pre-built engine, mainly for tests; takes precedence over
            ``database_url``.
    """

    load_dotenv()

    if engine is None:
        engine = get_engine(database_url)
    session_factory = get_sessionmaker(engine=engine)
    if os.getenv("DB_CREATE_SCHEMA", "false").lower() == "true":
        init_schema(engine)

    app = FastAPI(title="VoxBox API", version=__version__)
    app.state.engine = engine
    app.state.session_factory = session_factory

    init_logging(app)
    app.add_middleware(TenantContextMiddleware, session_factory=session_factory)
    _install_exception_handlers(app)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"message": "VoxBox API is running", "version": __version__}

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/version")
    async def version() -> dict[str, str | None]:
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    # metrics registry is per application
    Instrumentator(registry=CollectorRegistry()).instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )

    logger.info("VoxBox API %s configured (dialect=%s)", __version__, engine.dialect.name)
    return app
