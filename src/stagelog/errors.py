"""Error types for stagelog.

Manifesto:
    Recording a request never fails the request.  The only errors this
    package raises are configuration mistakes caught at startup.

Tags:
    stagelog, errors, config

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any


class StagelogError(Exception):
    """Base class for all stagelog errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ConfigError(StagelogError):
    """Invalid filter, settings value or middleware option."""
