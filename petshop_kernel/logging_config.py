"""
Module: petshop_kernel.logging_config
Responsibility: One JSON object per log line for everything under the
    ``petshop_kernel`` logger, with the till's request fields (who acted,
    on which register, for which appointment) attached automatically.
Architecture position: Kernel root.  Imported by every layer; imports only
    petshop_kernel.exceptions.

Every service logs a stable event name as the message (``register_opened``,
``ledger_record_appended``, ``appointment_completed`` ...) and passes the
event's fields through ``extra``.  Money is rendered as a string so the
JSON never carries a float.
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
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

from petshop_kernel.exceptions import PetshopKernelError

_LOGGER_PREFIX = "petshop_kernel"


class LogContext:
    """Request-scoped fields copied onto every log line of the current flow."""

    FIELDS = ("actor_id", "register_id", "appointment_id")

    _fields: ContextVar[dict[str, str]] = ContextVar("petshop_log_fields", default={})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """
        Attach fields for the duration of a ``with`` block.

        None values are skipped; everything else is stored as a string.
        Unknown names raise TypeError so a typo cannot silently drop a field.
        """
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context fields: {sorted(unknown)}")
        merged = cls.get_all()
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = cls._fields.set(merged)
        try:
            yield
        finally:
            cls._fields.reset(token)


_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """
    Render a record as a single JSON line.

    Kernel errors are expected outcomes (wrong password, register already
    open), so they are logged by code and fields without a traceback.
    Anything else keeps its traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if isinstance(exc, PetshopKernelError):
                payload["exc_code"] = exc.code
                for key, value in vars(exc).items():
                    if not key.startswith("_"):
                        payload[f"exc_{key}"] = value
            else:
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the petshop_kernel namespace, e.g. ``services.register``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_handler: logging.Handler | None = None
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Install the JSON handler on the petshop_kernel logger.

    The first call wins; later calls return the installed handler unchanged
    so bootstrap can run more than once in a process.
    """
    global _handler
    with _lock:
        if _handler is not None:
            return _handler

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False

        _handler = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())
        kernel_logger.addHandler(_handler)
        return _handler


def reset_logging() -> None:
    """Remove the installed handler. Tests only."""
    global _handler
    with _lock:
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        if _handler is not None:
            kernel_logger.removeHandler(_handler)
            _handler = None
        kernel_logger.setLevel(logging.WARNING)
        kernel_logger.propagate = True
