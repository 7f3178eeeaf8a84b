"""
Structured JSON logging for Assistant Bridge services.
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

# Names accepted by LOG_LEVEL / API_LOG_LEVEL.
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def to_logging_level(log_level: str) -> int:
    """Stdlib level for a configured name; unknown names mean INFO."""
    return LOG_LEVELS.get(str(log_level).lower(), logging.INFO)


def set_logger_level(name: str, log_level: str) -> None:
    """Apply a level to a stdlib logger hierarchy (e.g. every ``gateway.*`` logger)."""
    logging.getLogger(name).setLevel(to_logging_level(log_level))


def add_bridge_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Component, request id and a float timestamp on every event."""
    component, dot, _ = event_dict.get("logger", "").partition(".")
    if dot:
        event_dict["component"] = component

    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    event_dict["ts"] = time.time()
    return event_dict


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging and render JSON lines to stdout."""
    level = to_logging_level(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            add_bridge_context,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger(service_name).setLevel(level)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (a fresh UUID when none is given) to the current context."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def clear_context() -> None:
    request_id_var.set(None)


def get_logger(name: str, log_level: Optional[str] = None) -> structlog.BoundLogger:
    """Structured logger. With ``log_level`` the logger drops lower events itself,
    whether or not ``configure_logging`` has run."""
    if log_level is None:
        return structlog.get_logger(name)
    return structlog.wrap_logger(
        None,
        wrapper_class=structlog.make_filtering_bound_logger(to_logging_level(log_level)),
        logger_factory_args=(name,),
    )
