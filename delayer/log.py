from __future__ import annotations

import logging
import sys

import structlog

_CONFIGURED = False


def _level_to_int(level: str | int) -> int:
    """Accept 'INFO' / 'info' / 20 / logging.INFO and return an int level."""
    if isinstance(level, int):
        return level
    lvl = getattr(logging, str(level).upper(), None)
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(level: str | int = "INFO", fmt: str = "json") -> None:
    """
    Configure stdlib logging + structlog once per process.
    Call before the timer starts.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    lvl = _level_to_int(level)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=lvl,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.dev.ConsoleRenderer()
                if fmt == "console"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True
