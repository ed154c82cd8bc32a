"""Log sinks the recorder drains into.

Tags:
    stagelog, sink, structlog, severity

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from stagelog.logging import get_logger


class Severity(str, Enum):
    """Severity of a recorded entry; values double as logger method names."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@runtime_checkable
class Sink(Protocol):
    """Anything that accepts a severity, a message and an optional payload."""

    def write(self, severity: Severity, message: str, payload: Mapping[str, Any] | None = None) -> None: ...


class StructlogSink:
    """Writes entries to a structlog logger.

    The message becomes the structlog event and payload keys become
    fields of the record, so a summary renders as e.g.
    ``{"event": "GET /orders", "status": 200, "duration": 0.0132, ...}``.
    """

    def __init__(self, logger: Any = None) -> None:
        self.logger = logger if logger is not None else get_logger("stagelog.requests")

    def write(self, severity: Severity, message: str, payload: Mapping[str, Any] | None = None) -> None:
        method = getattr(self.logger, Severity(severity).value)
        method(message, **dict(payload or {}))


__all__ = ["Severity", "Sink", "StructlogSink"]
