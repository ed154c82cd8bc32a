"""
stagelog settings.

All values can be overridden via environment variables prefixed with
``STAGELOG_`` (e.g. ``STAGELOG_TRACE_ALL=true``) or a ``.env`` file.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from stagelog.filters import AnyFilter, NeverSuppress, PathFilter, PatternFilter, PrefixFilter
from stagelog.logging import configure_logging
from stagelog.recorder import DEFAULT_CONTEXT_KEY


class StagelogSettings(BaseSettings):
    """Settings for request logging.

    Order of precedence (highest → lowest):
        1. Environment variables (``STAGELOG_LOG_LEVEL``, etc.)
        2. ``.env`` file
        3. Defaults below
    """

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["json", "console"] | None = Field(
        default=None,
        description="Renderer; None picks JSON when stdout is not a tty",
    )
    service_name: str = Field(default="stagelog", description="service.name field on every record")

    # ── Recording ────────────────────────────────────────────────────────
    root: str | None = Field(default=None, description="Directory handler paths are relative to (default: cwd)")
    trace_all: bool = Field(default=False, description="Trace every request")
    trace_missed: bool = Field(default=True, description="Trace requests that end in 404")
    trace_header: str | None = Field(
        default="X-Stagelog-Trace",
        description="Request header that turns tracing on for one request",
    )
    context_key: str = Field(default=DEFAULT_CONTEXT_KEY, description="Scope key of the primality marker")

    # ── Suppression ──────────────────────────────────────────────────────
    suppress_paths: list[str] = Field(default_factory=list, description="Path prefixes with no summary record")
    suppress_patterns: list[str] = Field(default_factory=list, description="Regexes of paths with no summary record")

    model_config: dict[str, Any] = {
        "env_prefix": "STAGELOG_",
        "env_file": ".env",
        "extra": "ignore",
    }

    def build_filter(self) -> PathFilter:
        """Combine the configured prefixes and patterns into one filter."""
        filters: list[PathFilter] = []
        if self.suppress_paths:
            filters.append(PrefixFilter(self.suppress_paths))
        if self.suppress_patterns:
            filters.append(PatternFilter(self.suppress_patterns))
        if not filters:
            return NeverSuppress()
        if len(filters) == 1:
            return filters[0]
        return AnyFilter(filters)

    def json_format(self) -> bool | None:
        if self.log_format is None:
            return None
        return self.log_format == "json"

    def apply_logging(self) -> None:
        """Configure structlog from the logging fields."""
        configure_logging(level=self.log_level, json_format=self.json_format(), service=self.service_name)


@lru_cache(maxsize=1)
def get_settings() -> StagelogSettings:
    """Cached settings — loaded once per process."""
    return StagelogSettings()


__all__ = ["StagelogSettings", "get_settings"]
