"""structlog setup: JSON lines in deployed environments, console output locally."""

from __future__ import annotations

import logging
from typing import Any

import structlog

from portal_admin.core.config import get_settings


LOCAL_ENVS = {"local", "dev-console"}
REQUEST_CONTEXT_KEYS = ("request_id", "admin_user_id")

_CONFIGURED = False


def _service_context(service: str, env: str):
    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        del logger, method_name
        event_dict.setdefault("service", service)
        event_dict.setdefault("env", env)
        for key in REQUEST_CONTEXT_KEYS:
            event_dict.setdefault(key, None)
        return event_dict

    return processor


def configure_logging() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")

    renderer: Any
    if settings.env.strip().lower() in LOCAL_ENVS:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _service_context(settings.app_name, settings.env),
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def bind_request_context(request_id: str, admin_user_id: str | None = None) -> None:
    """Attach request identifiers to every event logged while serving the request."""

    structlog.contextvars.bind_contextvars(request_id=request_id, admin_user_id=admin_user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
