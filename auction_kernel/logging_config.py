"""
Structured JSON logging for the auction kernel and the bid worker.

Every line is one JSON object: ``ts``, ``level``, ``logger``, ``message``,
the job-scoped context fields bound through ``LogContext``, and whatever
the call site passed as ``extra``.  Messages are snake_case event names
(``bid_accepted``, ``job_dead_lettered``) so they can be grepped and
counted without parsing free text.

Both packages log under the single ``auction_kernel`` logger hierarchy,
configured once per process by ``configure_logging()``.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT: ContextVar[dict[str, str]] = ContextVar("log_context", default={})


class LogContext:
    """
    Job-scoped fields attached to every log line of the current context.

    Values are stored as strings.  Unknown field names raise ``TypeError``
    so a typo fails loudly instead of silently dropping the field.
    """

    FIELDS = frozenset(
        {
            "job_id",
            "job_type",
            "product_id",
            "bidder_id",
            "worker_id",
            "correlation_id",
        }
    )

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - cls.FIELDS
        if unknown:
            raise TypeError(f"Unknown log context field: {sorted(unknown)[0]}")
        merged = dict(_CONTEXT.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Add fields to the current context.  None values are ignored."""
        _CONTEXT.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_CONTEXT.get())

    @classmethod
    def clear(cls) -> None:
        _CONTEXT.set({})

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Context manager: add fields on entry, restore the previous set on exit."""
        return _BoundContext(cls._merged(fields))


class _BoundContext:

    def __init__(self, values: dict[str, str]):
        self._values = values
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _CONTEXT.set(self._values)
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _CONTEXT.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Handle datetime and Decimal in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.  Context fields win over ``extra`` keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Kernel exceptions expose ``code`` and their public attributes."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

ROOT_LOGGER_NAME = "auction_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Child logger, e.g. ``get_logger("worker.loop")`` -> ``auction_kernel.worker.loop``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Attach one JSON handler to the ``auction_kernel`` hierarchy.

    Only the first call in a process has an effect; the CLI and the test
    suite may both call it.  ``level`` accepts a name in any case.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    with _lock:
        if _configured:
            return root
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)
    return root


def reset_logging() -> None:
    """Drop handlers and forget configuration.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
