"""
Structured JSON logging for the PMS core (``pms_kernel.logging_config``).

Every logger under ``pms_kernel.*`` writes one JSON object per line.

The workflow executor binds the actor, record and lifecycle of each
dispatch, and the sequence service binds the counter series it is
allocating from, through ``LogContext.bind``.  The formatter stamps those
fields on every line emitted inside the block, including lines from the
pure engines, which never see them as arguments.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "STRUCTURED_HANDLER_NAME",
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
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "actor_id",
    "entity_id",
    "lifecycle",
    "sequence_type",
)

_context: ContextVar[dict[str, Any] | None] = ContextVar("pms_log_context", default=None)


class LogContext:
    """Request-scoped log fields.  Safe across threads and asyncio tasks."""

    @classmethod
    def get_all(cls) -> dict[str, Any]:
        return dict(_context.get() or {})

    @classmethod
    def clear(cls) -> None:
        _context.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Add ``fields`` for the duration of the block.

        Nested binds stack; the outer values come back on exit.  ``None``
        values are skipped.

        Raises:
            TypeError: a field outside ``CONTEXT_FIELDS``.
        """
        unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")

        merged = cls.get_all()
        merged.update({k: v for k, v in fields.items() if v is not None})
        token = _context.set(merged)
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    # UUID, Decimal and the rest: the string form is exact
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """``exc_*`` fields for a logged exception.

    Kernel errors contribute their ``code``, ``retryable`` flag and the
    structured attributes they were raised with.
    """
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
        fields["exc_retryable"] = bool(getattr(exc, "retryable", False))
    for key, val in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = val
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Bound context wins over an ``extra`` key of the same name.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "pms_kernel"
STRUCTURED_HANDLER_NAME = "pms_kernel.structured"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the pms_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> bool:
    """Attach the JSON handler to the ``pms_kernel`` logger.

    Only the first call after import (or after ``reset_logging``) has any
    effect.  Returns True when this call installed the handler.
    """
    global _configured
    with _lock:
        if _configured:
            return False

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False

        h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        h.set_name(STRUCTURED_HANDLER_NAME)
        h.setFormatter(StructuredFormatter())
        root.addHandler(h)
        _configured = True
        return True


def reset_logging() -> None:
    """Remove the handler ``configure_logging`` installed.  FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
        root = logging.getLogger(_LOGGER_PREFIX)
        for h in [h for h in root.handlers if h.get_name() == STRUCTURED_HANDLER_NAME]:
            root.removeHandler(h)
        root.setLevel(logging.WARNING)
