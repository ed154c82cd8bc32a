"""Summary suppression filters.

A filter decides, from the request path alone, whether the summary
record for that request is skipped.  Health checks and metrics scrapes
are the usual candidates.  Trace records are never filtered.

Usage:
    from stagelog.filters import PrefixFilter, PatternFilter, as_path_filter

    quiet = PrefixFilter(["/health", "/metrics"])
    quiet.should_suppress("/health/ready")   # True

    as_path_filter(lambda path: path.endswith(".ico"))

Tags:
    stagelog, filters, strategy, suppression

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any, Protocol, runtime_checkable

from stagelog.errors import ConfigError


@runtime_checkable
class PathFilter(Protocol):
    """Strategy deciding whether a request's summary record is suppressed."""

    def should_suppress(self, path: str) -> bool: ...


class NeverSuppress:
    """Default filter: every request is logged."""

    def should_suppress(self, path: str) -> bool:
        return False

    def __repr__(self) -> str:
        return "NeverSuppress()"


class PrefixFilter:
    """Suppress paths equal to, or nested under, any of the given prefixes."""

    def __init__(self, prefixes: Iterable[str]) -> None:
        self.prefixes = tuple(p.rstrip("/") or "/" for p in prefixes)

    def should_suppress(self, path: str) -> bool:
        for prefix in self.prefixes:
            if prefix == "/" or path == prefix or path.startswith(prefix + "/"):
                return True
        return False

    def __repr__(self) -> str:
        return f"PrefixFilter({list(self.prefixes)!r})"


class PatternFilter:
    """Suppress paths matched (``re.search``) by any of the given patterns."""

    def __init__(self, patterns: Iterable[str | re.Pattern[str]]) -> None:
        compiled: list[re.Pattern[str]] = []
        for pattern in patterns:
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise ConfigError("invalid suppression pattern", pattern=str(pattern), error=str(e)) from e
        self.patterns = tuple(compiled)

    def should_suppress(self, path: str) -> bool:
        return any(p.search(path) for p in self.patterns)

    def __repr__(self) -> str:
        return f"PatternFilter({[p.pattern for p in self.patterns]!r})"


class CallableFilter:
    """Adapts a plain ``path -> bool`` function."""

    def __init__(self, func: Callable[[str], Any]) -> None:
        self.func = func

    def should_suppress(self, path: str) -> bool:
        return bool(self.func(path))

    def __repr__(self) -> str:
        return f"CallableFilter({self.func!r})"


class AnyFilter:
    """Suppress when any of the wrapped filters would."""

    def __init__(self, filters: Iterable[PathFilter]) -> None:
        self.filters = tuple(filters)

    def should_suppress(self, path: str) -> bool:
        return any(f.should_suppress(path) for f in self.filters)

    def __repr__(self) -> str:
        return f"AnyFilter({list(self.filters)!r})"


def as_path_filter(obj: PathFilter | Callable[[str], Any] | None) -> PathFilter:
    """Coerce ``None``, a callable, or a filter object into a :class:`PathFilter`.

    Raises:
        ConfigError: *obj* is neither a filter nor callable.
    """
    if obj is None:
        return NeverSuppress()
    if isinstance(obj, PathFilter):
        return obj
    if callable(obj):
        return CallableFilter(obj)
    raise ConfigError("filter must be a PathFilter or a callable", type=type(obj).__name__)


__all__ = [
    "AnyFilter",
    "CallableFilter",
    "NeverSuppress",
    "PathFilter",
    "PatternFilter",
    "PrefixFilter",
    "as_path_filter",
]
