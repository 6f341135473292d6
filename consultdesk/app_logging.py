"""Service and access logging setup.

``init_logging`` wires the ``consultdesk`` logger and the ``uvicorn.access``
logger to daily-rotated files and, when given the FastAPI app, installs a
middleware that writes one JSON access line per request with an
``X-Request-Id`` for correlation. Customer contact details and credentials
are masked before anything is logged.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

SERVICE_LOGGER = "consultdesk"
ACCESS_LOGGER = "uvicorn.access"
SKIP_PATHS = frozenset({"/api/health", "/api/metrics"})

SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "token",
    "access_token",
    "customer_email",
    "customer_phone",
}


@dataclass(frozen=True)
class LogSettings:
    log_dir: str
    log_level: str
    log_json: bool
    log_request_bodies: bool
    retention_days: int
    rotate_utc: bool

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


def log_settings() -> LogSettings:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    return LogSettings(
        log_dir=os.path.abspath(os.getenv("LOG_DIR", "logs")),
        log_level=logging.getLevelName(level),
        log_json=_flag("LOG_JSON"),
        log_request_bodies=_flag("LOG_REQUEST_BODIES"),
        retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
        rotate_utc=_flag("LOG_ROTATE_UTC"),
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per record, used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def _scrub(data: object) -> object:
    """Mask sensitive keys in nested dicts and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if k.lower() in SENSITIVE_FIELDS else _scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


def _rotating_handler(path: str, settings: LogSettings) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        path,
        when="midnight",
        backupCount=settings.retention_days,
        utc=settings.rotate_utc,
    )
    handler.setFormatter(_get_formatter(settings.log_json))
    return handler


def _install_access_logging(app: FastAPI, settings: LogSettings) -> None:
    access_logger = logging.getLogger(ACCESS_LOGGER)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        body_content = None
        if settings.log_request_bodies:
            body_bytes = await request.body()

            async def receive() -> dict:
                return {"type": "http.request", "body": body_bytes, "more_body": False}

            request._receive = receive  # type: ignore[attr-defined]
            if body_bytes:
                try:
                    body_content = _scrub(json.loads(body_bytes))
                except ValueError:
                    body_content = body_bytes.decode("utf-8", errors="replace")

        response = await call_next(request)

        client_ip = request.headers.get("X-Forwarded-For")
        if not client_ip and request.client is not None:
            client_ip = request.client.host

        log_data: dict[str, Any] = {
            "request_id": request_id,
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


def init_logging(app: FastAPI | None = None) -> LogSettings:
    """Initialise service and access loggers and return the settings used."""

    settings = log_settings()
    os.makedirs(settings.log_dir, exist_ok=True)
    level = getattr(logging, settings.log_level, logging.INFO)

    service_logger = logging.getLogger(SERVICE_LOGGER)
    if not service_logger.handlers:
        service_logger.addHandler(
            _rotating_handler(os.path.join(settings.log_dir, "app.log"), settings)
        )
    service_logger.setLevel(level)

    access_logger = logging.getLogger(ACCESS_LOGGER)
    access_logger.handlers.clear()
    access_logger.addHandler(
        _rotating_handler(os.path.join(settings.log_dir, "access.log"), settings)
    )
    access_logger.setLevel(level)

    if app is not None:
        cast(Any, app).logger = service_logger
        _install_access_logging(app, settings)
    return settings


__all__ = ["JsonFormatter", "LogSettings", "init_logging", "log_settings"]
