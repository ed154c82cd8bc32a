"""Source locations for matched stages.

A stage is any handler the router decided applies to a request: an
endpoint, a dependency, or a spot marked explicitly with
:func:`stagelog.middleware.mark_stage`.  :class:`StageRef` pins it to a
file and line; :class:`SourceResolver` turns that into the relative
``path:line`` labels and literal source lines used by trace output.

Tags:
    stagelog, source, inspect, linecache, tracing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import functools
import inspect
import linecache
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

SOURCE_UNAVAILABLE = "<source unavailable>"


@dataclass(frozen=True)
class StageRef:
    """File and 1-based line number of a matched stage."""

    path: str
    lineno: int
    name: str | None = None

    @classmethod
    def from_callable(cls, func: Callable[..., Any]) -> StageRef:
        """Locate the definition of *func*, looking through decorators."""
        target = inspect.unwrap(func)
        if isinstance(target, functools.partial):
            target = inspect.unwrap(target.func)
        code = getattr(target, "__code__", None)
        if code is None and not inspect.isclass(target):
            # Callable instances report their __call__ method
            code = getattr(getattr(target, "__call__", None), "__code__", None)
        if code is not None:
            name = getattr(target, "__qualname__", None) or code.co_name
            return cls(path=code.co_filename, lineno=code.co_firstlineno, name=name)
        path = inspect.getsourcefile(target) or inspect.getfile(target)
        _, lineno = inspect.getsourcelines(target)
        return cls(path=path, lineno=lineno, name=getattr(target, "__qualname__", None))

    @classmethod
    def from_caller(cls, depth: int = 0) -> StageRef:
        """Current line of the calling frame, or of the frame *depth* levels above it."""
        frame = sys._getframe(depth + 1)
        return cls(path=frame.f_code.co_filename, lineno=frame.f_lineno, name=frame.f_code.co_name)


@functools.lru_cache(maxsize=2048)
def _read_line(path: str, lineno: int) -> str:
    line = linecache.getline(path, lineno)
    if not line:
        return SOURCE_UNAVAILABLE
    return trace_label(line)


def trace_label(line: str) -> str:
    """Strip surrounding whitespace and a trailing block opener from *line*."""
    label = line.strip()
    if label.endswith(":"):
        label = label[:-1].rstrip()
    return label


class SourceResolver:
    """Resolves stage locations relative to an application root."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root)

    def relative(self, path: str | os.PathLike[str]) -> str:
        """*path* relative to the root, using ``..`` when it lies outside."""
        return Path(os.path.relpath(path, self.root)).as_posix()

    def location(self, stage: StageRef) -> str:
        """``"relative/path.py:line"`` label for *stage*."""
        return f"{self.relative(stage.path)}:{stage.lineno}"

    def source_line(self, stage: StageRef) -> str:
        """Literal source text at *stage*, trimmed for trace output.

        Lines that cannot be read come back as ``"<source unavailable>"``.
        Results are cached per ``(path, line)``.
        """
        return _read_line(stage.path, stage.lineno)


def clear_source_cache() -> None:
    """Forget cached source lines (e.g. after files change on disk)."""
    _read_line.cache_clear()
    linecache.clearcache()


__all__ = [
    "SOURCE_UNAVAILABLE",
    "SourceResolver",
    "StageRef",
    "clear_source_cache",
    "trace_label",
]
