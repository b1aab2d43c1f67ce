from __future__ import annotations
import logging, sys
import structlog
from contextvars import ContextVar

attempt_var: ContextVar[int | None] = ContextVar("attempt", default=None)

QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "websockets")

def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, stream=sys.stdout, format="%(message)s")
    # driver chatter only at WARNING and above, whatever the app level
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        cache_logger_on_first_use=True,
    )

def get_logger(name: str = "chatbridge"):
    return structlog.get_logger(name)

def bind_attempt(attempt: int | None):
    """Tag subsequent log lines with the connection attempt that produced them."""
    attempt_var.set(attempt)
    structlog.contextvars.bind_contextvars(attempt=attempt if attempt is not None else "-")
