"""SQLAlchemy integration — charge query time to the current request.

Listens on an ``Engine``'s cursor events and adds each statement's
elapsed time and count to :class:`~stagelog.counters.RequestCounters`,
which is where the recorder picks up the ``db`` and ``db_queries``
fields of a request summary.

Usage:
    from sqlalchemy import create_engine
    from stagelog.database import instrument_engine

    engine = create_engine("sqlite:///app.db")
    instrument_engine(engine)

Tags:
    stagelog, database, sqlalchemy, counters, timing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine

from stagelog.counters import RequestCounters, current_counters

_START_STACK_KEY = "stagelog_query_start"


class _EngineListeners:
    """Bound listener set for one engine/counters pair."""

    def __init__(self, counters: RequestCounters) -> None:
        self.counters = counters

    def before_cursor_execute(
        self, conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: bool
    ) -> None:
        conn.info.setdefault(_START_STACK_KEY, []).append(time.perf_counter())

    def after_cursor_execute(
        self, conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: bool
    ) -> None:
        starts = conn.info.get(_START_STACK_KEY)
        if not starts:
            return
        elapsed = time.perf_counter() - starts.pop()
        self.counters.increment_accrued_time(elapsed)
        self.counters.increment_operation_count()

    def handle_error(self, exception_context: Any) -> None:
        # Failed statements never reach after_cursor_execute
        conn = exception_context.connection
        if conn is None:
            return
        starts = conn.info.get(_START_STACK_KEY)
        if starts:
            starts.pop()


def instrument_engine(engine: Engine, counters: RequestCounters | None = None) -> None:
    """Start feeding *engine*'s statement timings into *counters*.

    Instrumenting an engine twice replaces the earlier listeners.
    """
    uninstrument_engine(engine)
    listeners = _EngineListeners(counters if counters is not None else current_counters)
    event.listen(engine, "before_cursor_execute", listeners.before_cursor_execute)
    event.listen(engine, "after_cursor_execute", listeners.after_cursor_execute)
    event.listen(engine, "handle_error", listeners.handle_error)
    engine._stagelog_listeners = listeners  # type: ignore[attr-defined]


def uninstrument_engine(engine: Engine) -> None:
    """Remove listeners added by :func:`instrument_engine`; no-op if none."""
    listeners = getattr(engine, "_stagelog_listeners", None)
    if listeners is None:
        return
    event.remove(engine, "before_cursor_execute", listeners.before_cursor_execute)
    event.remove(engine, "after_cursor_execute", listeners.after_cursor_execute)
    event.remove(engine, "handle_error", listeners.handle_error)
    del engine._stagelog_listeners  # type: ignore[attr-defined]


def is_instrumented(engine: Engine) -> bool:
    return getattr(engine, "_stagelog_listeners", None) is not None


__all__ = ["instrument_engine", "is_instrumented", "uninstrument_engine"]
