"""structlog setup. One JSON object per line in production, console rendering when debugging."""

import logging
import sys

import structlog

# Driver and access chatter stays at WARNING unless the app itself is debugging.
QUIET_LOGGERS = ("pymongo", "motor", "uvicorn.access")


def configure_logging(debug: bool = False, json_logs: bool | None = None) -> None:
    level = logging.DEBUG if debug else logging.INFO
    if json_logs is None:
        json_logs = not debug
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(level if debug else logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_request_id(request_id: str) -> None:
    """Start a fresh log context for a request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_account_id(account_id: str) -> None:
    structlog.contextvars.bind_contextvars(account_id=account_id)


def current_request_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("request_id")
