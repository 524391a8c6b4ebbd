"""Observability helpers for memoredis."""

from memoredis.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    MemoLogger,
    configure_logging,
)

__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "LogContext",
    "MemoLogger",
    "configure_logging",
]
