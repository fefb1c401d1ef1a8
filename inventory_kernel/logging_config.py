"""
Structured JSON logging for the inventory kernel.

Every record under the ``inventory_kernel`` logger is written as one JSON
line. The ledger binds the running operation, the transaction type and,
during a reversal, the transaction id; those fields ride along on every
record emitted inside the unit of work.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "inventory_kernel"


class LogContext:
    """Fields bound by the ledger for the duration of one operation."""

    FIELDS = ("operation", "transaction_type", "transaction_id")

    _vars: dict[str, ContextVar[str | None]] = {
        field: ContextVar(f"inventory_log_{field}", default=None) for field in FIELDS
    }

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set the given fields; None leaves a field unchanged."""
        for field, value in fields.items():
            if value is not None:
                cls._var(field).set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            field: value
            for field, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """Set fields for the enclosed block, then restore the previous values."""
        bound = [(cls._var(field), value) for field, value in fields.items() if value is not None]
        tokens = [(var, var.set(value)) for var, value in bound]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @classmethod
    def _var(cls, field: str) -> ContextVar[str | None]:
        try:
            return cls._vars[field]
        except KeyError:
            raise ValueError(f"Unknown log context field: {field}") from None


# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, then fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # field, shortfalls, entity_id and the like
            payload.update(
                (f"exc_{key}", value)
                for key, value in vars(exc).items()
                if not key.startswith("_")
            )
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``inventory_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the inventory_kernel logger; later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.setLevel(level)
    logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    logger.addHandler(target)


def reset_logging() -> None:
    """Drop the handlers and allow configure_logging to run again (tests)."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
