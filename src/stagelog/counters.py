"""Request-scoped downstream counters.

Lets a data-access layer charge elapsed time and query counts to the
request currently being handled without holding a reference to its
recorder.

Design choice: contextvars
- Scoped to one thread or one asyncio task, so concurrent requests
  never see each other's totals
- Child tasks inherit the parent's tally object, so increments made
  inside Starlette's ``call_next`` task are visible to the middleware
- Thread-locals are not asyncio-safe

Usage:
    from stagelog.counters import current_counters

    current_counters.activate()
    current_counters.increment_accrued_time(0.0021)
    current_counters.increment_operation_count()
    current_counters.accrued_time()     # 0.0021
    current_counters.reset()

Tags:
    stagelog, counters, contextvars, database, request-scope

Doc-Types:
    api-reference
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass


@dataclass
class _Tally:
    """Mutable totals shared by every task of one logical request."""

    accrued_time: float | None = None
    operation_count: int | None = None


class RequestCounters:
    """Handle on the per-context downstream time and operation counters.

    Readers return ``None`` until something has been recorded, so callers
    can tell "never touched the database" apart from "touched it for zero
    seconds".
    """

    def __init__(self, name: str = "stagelog_counters") -> None:
        self._tally: ContextVar[_Tally | None] = ContextVar(name, default=None)  # noqa: B039

    def _current(self) -> _Tally:
        tally = self._tally.get()
        if tally is None:
            tally = _Tally()
            self._tally.set(tally)
        return tally

    def activate(self) -> None:
        """Bind a tally in the current context without clearing an existing one.

        Call before spawning tasks that should report into this request.
        """
        self._current()

    def accrued_time(self) -> float | None:
        """Total downstream seconds recorded for the current request."""
        tally = self._tally.get()
        return None if tally is None else tally.accrued_time

    def operation_count(self) -> int | None:
        """Total downstream operations recorded for the current request."""
        tally = self._tally.get()
        return None if tally is None else tally.operation_count

    def increment_accrued_time(self, seconds: float) -> float:
        tally = self._current()
        tally.accrued_time = (tally.accrued_time or 0.0) + seconds
        return tally.accrued_time

    def increment_operation_count(self, count: int = 1) -> int:
        tally = self._current()
        tally.operation_count = (tally.operation_count or 0) + count
        return tally.operation_count

    def reset(self) -> None:
        """Clear both counters for the current context."""
        tally = self._tally.get()
        if tally is None:
            return
        tally.accrued_time = None
        tally.operation_count = None


# Shared handle for layers that are not given an explicit one
current_counters = RequestCounters()


__all__ = ["RequestCounters", "current_counters"]
