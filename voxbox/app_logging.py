"""Application and access logging setup.

This module centralizes logging configuration for the API. It provides:

- A JSON formatter (opt-in via LOG_JSON) or a human-readable formatter, both
  carrying the tenancy name of the request being served.
- Timed rotation of the application log (voxbox.log) and the access log
  (access.log), honoring retention and timezone options.
- An HTTP middleware writing one structured access-log line per request
  (request id, tenancy name, method, path, status, latency, client IP,
  scrubbed headers, optional scrubbed body).

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from uuid import uuid4

from fastapi import FastAPI, Request

from .core.tenant_context import get_current_tenant_context

APP_LOGGER_NAME = "voxbox"
ACCESS_LOGGER_NAME = "uvicorn.access"


class TenantLogFilter(logging.Filter):
    """Attach the current tenancy name to every record as ``record.tenant``."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_current_tenant_context()
        tenancy_name = context.tenancy_name if context is not None else None
        record.tenant = tenancy_name or "-"
        return True


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "tenant": getattr(record, "tenant", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter(
        "[%(asctime)s] %(levelname)s [%(tenant)s] in %(name)s: %(message)s"
    )


SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "password",
    "token",
    "access_token",
    "refresh_token",
}


def _scrub(data: object) -> object:
    """Recursively scrub sensitive fields from dictionaries and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if k.lower() in SENSITIVE_FIELDS else _scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


def _install_access_logging(app: FastAPI) -> None:
    """Install the request/response access logging middleware.

    Health and metrics probes are skipped. A generated ``X-Request-Id`` is
    echoed back in the response headers for correlation.
    """

    log_request_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    skip_paths = {"/api/health", "/api/metrics"}
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in skip_paths:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        body_content = None
        if log_request_bodies:
            body_bytes = await request.body()
            if body_bytes:
                try:
                    body_content = _scrub(json.loads(body_bytes))
                except ValueError:
                    body_content = body_bytes.decode("utf-8", errors="replace")

        response = await call_next(request)

        context = getattr(request.state, "tenant_context", None)
        client_ip = request.headers.get("X-Forwarded-For")
        if not client_ip and request.client is not None:
            client_ip = request.client.host

        log_data = {
            "request_id": request_id,
            "tenant": getattr(request.state, "tenancy_name", None)
            or (context.tenancy_name if context is not None else None),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "client_ip": client_ip,
            "headers": _scrub(dict(request.headers)),
        }
        if body_content is not None:
            log_data["body"] = body_content

        response.headers["X-Request-Id"] = request_id
        access_logger.info(json.dumps(log_data, default=str))
        return response


def _rotating_handler(
    path: str, retention_days: int, rotate_utc: bool, formatter: logging.Formatter
) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        path,
        when="midnight",
        backupCount=retention_days,
        utc=rotate_utc,
    )
    handler.setFormatter(formatter)
    handler.addFilter(TenantLogFilter())
    return handler


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise the application and access loggers."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("LOG_JSON", "false").lower() == "true"
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)

    formatter = _get_formatter(log_json)
    log_level = getattr(logging, log_level_str, logging.INFO)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(
            _rotating_handler(
                os.path.join(log_dir, "voxbox.log"), retention_days, rotate_utc, formatter
            )
        )
    app_logger.setLevel(log_level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(
        _rotating_handler(
            os.path.join(log_dir, "access.log"), retention_days, rotate_utc, formatter
        )
    )
    access_logger.setLevel(log_level)

    if app is not None:
        _install_access_logging(app)
