"""
Structured logging for WebForge.

structlog key/value events, rendered by rich on a terminal and as JSON lines
everywhere else. Everything goes to stderr: in CLI ``--ndjson`` mode stdout
carries the generation stream.

Requests carry provider API keys and base64 screenshots, so every event passes
through a scrubber before rendering.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from .config import Settings

SECRET_KEYS = ("api_key", "apikey", "authorization", "x-api-key", "token")
MAX_VALUE_CHARS = 500
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "uvicorn.access")


class StderrLoggerFactory:
    """PrintLogger factory bound to whatever ``sys.stderr`` is when a logger is created."""

    def __call__(self, *args: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def scrub_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask secret-looking fields and truncate oversized string values."""
    for key, value in list(event_dict.items()):
        if key == "event":
            continue
        if any(marker in key.lower() for marker in SECRET_KEYS):
            event_dict[key] = "***"
        elif isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            event_dict[key] = f"{value[:MAX_VALUE_CHARS]}... [{len(value)} chars]"
    return event_dict


def setup_logging(settings: Settings | None = None) -> None:
    """Configure stdlib logging and structlog.

    Args:
        settings: Optional settings. If None, uses INFO level.
    """
    log_level = settings.log_level if settings else "INFO"
    level = getattr(logging, log_level, logging.INFO)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=log_level == "DEBUG",
    )
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)
    # SDK and HTTP client chatter only at DEBUG
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        scrub_event,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if sys.stderr.isatty():
        processors += [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        # sys.stderr may be swapped after setup (CLI runners, pipes)
        logger_factory=StderrLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: object) -> None:
    """Bind request-scoped fields (request id, provider) to later events in this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
