"""
Reporting capabilities handed to every pipeline component.

Two sinks, both passed in explicitly:
  ErrorSink.handle_error(err, func_name, data)   structured failure record
  LogSink.info(msg, **fields)                    informational record
"""
from __future__ import annotations

from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)


class ErrorSink(Protocol):
    def handle_error(self, err: BaseException | None, func_name: str, data: str = "") -> None:
        ...


class LogSink(Protocol):
    def info(self, msg: str, **fields: Any) -> None:
        ...


def format_failure(err: BaseException | None, func_name: str, data: str = "") -> str:
    """Render ``FAILURE: func <name>, <error>, [<data>].``"""
    suffix = f", [{data}]" if data else ""
    return f"FAILURE: func {func_name}, {err}{suffix}."


class StructlogErrorSink:
    """Error sink writing one structlog error record per failure."""

    def __init__(self, log=None):
        self._log = log or logger

    def handle_error(self, err: BaseException | None, func_name: str, data: str = "") -> None:
        if err is None:
            return
        self._log.error(
            format_failure(err, func_name, data),
            func=func_name,
            error=str(err),
            error_type=type(err).__name__,
            data=data,
        )


class StructlogLogSink:
    def __init__(self, log=None):
        self._log = log or logger

    def info(self, msg: str, **fields: Any) -> None:
        self._log.info(msg, **fields)
