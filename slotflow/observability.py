"""
Logging for slotflow.

The tag logs through a small ``TagLogger`` protocol so that publishers can
plug in their own implementation via ``tag.set_logger(...)``. The default
implementations route everything into the standard library ``logging``
module.

Messages carry a *source* (``"AdPipeline"``, ``"AdTag"``,
``"EventSourceRegistry"``, ...) so log output can be filtered by component.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .dom import Window

DEBUG_QUERY_PARAM = "slotflowDebug"


@runtime_checkable
class TagLogger(Protocol):
    """
    Protocol for publisher-replaceable loggers.

    The first positional argument is usually the source component, followed
    by the message and optional parameters.
    """

    def debug(self, message: Any = None, *params: Any) -> None: ...

    def info(self, message: Any = None, *params: Any) -> None: ...

    def warn(self, message: Any = None, *params: Any) -> None: ...

    def error(self, message: Any = None, *params: Any) -> None: ...


def _format(message: Any, params: tuple[Any, ...]) -> str:
    parts = [str(message)] if message is not None else []
    parts.extend(str(p) for p in params)
    return " ".join(parts)


class StdlibTagLogger:
    """Default logger: forwards to a standard library logger."""

    def __init__(self, python_logger: logging.Logger | None = None) -> None:
        self._logger = python_logger or logging.getLogger("slotflow")

    def debug(self, message: Any = None, *params: Any) -> None:
        self._logger.debug(_format(message, params))

    def info(self, message: Any = None, *params: Any) -> None:
        self._logger.info(_format(message, params))

    def warn(self, message: Any = None, *params: Any) -> None:
        self._logger.warning(_format(message, params))

    def error(self, message: Any = None, *params: Any) -> None:
        self._logger.error(_format(message, params))


class NoopLogger:
    """Drops everything except errors."""

    def __init__(self) -> None:
        self._errors = logging.getLogger("slotflow")

    def debug(self, message: Any = None, *params: Any) -> None:
        return

    def info(self, message: Any = None, *params: Any) -> None:
        return

    def warn(self, message: Any = None, *params: Any) -> None:
        return

    def error(self, message: Any = None, *params: Any) -> None:
        self._errors.error(_format(message, params))


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted records.

    Each record includes:
    - timestamp (ISO 8601)
    - level
    - source (first positional argument when more than one is given)
    - message
    - params and any extra context

    Example output:
        {"timestamp": "2026-01-02T10:30:00+00:00", "level": "debug",
         "source": "AdPipeline", "message": "stage: init", "params": []}
    """

    name: str = "slotflow"
    extra_context: dict[str, Any] = field(default_factory=dict)
    _python_logger: logging.Logger | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: str, message: Any, params: tuple[Any, ...]) -> None:
        source = None
        if params and isinstance(message, str):
            source, message, params = message, params[0], params[1:]

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "source": source,
            "message": message,
            "params": list(params),
            **self.extra_context,
        }

        json_str = json.dumps(record, default=str)
        log_method = getattr(self._python_logger, "warning" if level == "warn" else level)
        log_method(json_str)

    def debug(self, message: Any = None, *params: Any) -> None:
        self._log("debug", message, params)

    def info(self, message: Any = None, *params: Any) -> None:
        self._log("info", message, params)

    def warn(self, message: Any = None, *params: Any) -> None:
        self._log("warn", message, params)

    def error(self, message: Any = None, *params: Any) -> None:
        self._log("error", message, params)

    def with_context(self, **extra: Any) -> "JSONLogger":
        """Create a new logger with additional context."""
        return JSONLogger(name=self.name, extra_context={**self.extra_context, **extra})


def is_debug_enabled(window: "Window | None") -> bool:
    """True if the page URL carries ``?slotflowDebug=true``."""
    if window is None:
        return False
    param = window.location.query_param(DEBUG_QUERY_PARAM)
    return param is not None and param.lower() == "true"


def get_logger(custom: TagLogger | None = None, window: "Window | None" = None) -> TagLogger:
    """
    Resolve the logger the tag should use.

    A publisher logger set via ``set_logger`` always wins. Otherwise the
    stdlib logger is used; the debug query parameter lowers its level to
    DEBUG for the page view.
    """
    if custom is not None:
        return custom
    python_logger = logging.getLogger("slotflow")
    if is_debug_enabled(window):
        python_logger.setLevel(logging.DEBUG)
    return StdlibTagLogger(python_logger)
