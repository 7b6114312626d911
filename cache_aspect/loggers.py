"""
Logger sinks accepted by the cache registry.

A cache logger is any object exposing ``info``, ``warning`` and ``error``
callables taking ``(message, *params)``. structlog and stdlib loggers
satisfy this as-is.
"""

import sys
from typing import Any, IO, Optional, Union

import structlog

from shared.logging import add_process_context

LOGGER_METHODS = ("info", "warning", "error")


class DisabledCacheLogger:
    """Silent sink."""

    def info(self, message: str, *params: Any) -> None:
        pass

    def warning(self, message: str, *params: Any) -> None:
        pass

    def error(self, message: str, *params: Any) -> None:
        pass


class JsonCacheLogger:
    """Default structured sink: one JSON record per call with pid and message."""

    def __init__(self, stream: Optional[IO[str]] = None):
        self._logger = structlog.wrap_logger(
            structlog.PrintLogger(stream if stream is not None else sys.stdout),
            wrapper_class=structlog.BoundLogger,
            processors=[
                add_process_context,
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.EventRenamer("message"),
                structlog.processors.JSONRenderer(),
            ],
        )

    def _emit(self, level: str, message: str, params: tuple) -> None:
        if params:
            getattr(self._logger, level)(message, params=list(params))
        else:
            getattr(self._logger, level)(message)

    def info(self, message: str, *params: Any) -> None:
        self._emit("info", message, params)

    def warning(self, message: str, *params: Any) -> None:
        self._emit("warning", message, params)

    def error(self, message: str, *params: Any) -> None:
        self._emit("error", message, params)


def is_valid_logger(logger: Any) -> bool:
    """Check that ``logger`` exposes every method of the logger capability."""
    return logger is not None and all(
        callable(getattr(logger, method, None)) for method in LOGGER_METHODS
    )


def resolve_logger(value: Union[bool, Any, None], current: Any) -> Any:
    """Map a configured logger value onto a usable sink.

    ``False`` silences, ``True`` selects the JSON sink, ``None`` keeps
    ``current``. An object missing any capability method is replaced by the
    silent sink and one warning is written through the JSON sink.
    """
    if value is False:
        return DisabledCacheLogger()
    if value is True:
        return JsonCacheLogger()
    if value is None:
        return current
    if is_valid_logger(value):
        return value

    JsonCacheLogger().warning(
        "Invalid logger. Logger should be an object with 'info', 'warning' and 'error' methods"
    )
    return DisabledCacheLogger()
