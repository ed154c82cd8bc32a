"""Per-request instrumentation recorder.

One :class:`Recorder` is created for every request-handling invocation.
Stages report themselves with :meth:`Recorder.add_match` as routing
proceeds, :meth:`Recorder.add` builds the summary (and optional trace)
once the response status is known, and :meth:`Recorder.drain` flushes
everything to the sink.

Manifesto:
    A request is logged exactly once, at a severity that reflects its
    outcome, no matter how many times it is re-dispatched internally.

Architecture:
    ::

        routing ──add_match()──▶ Recorder.matches
                                      │
        handler done ──add(status)──▶ Recorder.entries ◀── RequestCounters
                                      │                    (db, db_queries)
        end of request ──drain()────▶ Sink   (primary recorder only)
                         reset()────▶ RequestCounters

Primality:
    The first recorder created for a logical request claims a marker in
    the request context when the slot is empty (missing or ``None``).
    Recorders created afterwards for the same context find the marker
    taken, stay non-primary, and never drain.

Guardrails:
    - ``add`` appends a summary on every call; call it once per request
    - ``drain`` does not clear entries; a second call re-emits them
    - Summary duration uses a monotonic clock, never wall time

Tags:
    stagelog, recorder, request-logging, tracing, severity

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import time
import uuid
from collections.abc import Callable, MutableMapping
from pathlib import Path
from typing import Any, NamedTuple

from stagelog.counters import RequestCounters, current_counters
from stagelog.filters import PathFilter, as_path_filter
from stagelog.logging import get_logger
from stagelog.request import RequestInfo
from stagelog.sink import Severity, Sink
from stagelog.source import SourceResolver, StageRef

DEFAULT_CONTEXT_KEY = "stagelog.recorder_id"

log = get_logger(__name__)


class LogEntry(NamedTuple):
    """One queued record: severity, message and optional structured payload."""

    severity: Severity
    message: str
    payload: dict[str, Any] | None = None


def severity_for_status(status: int) -> Severity:
    """Map a response status to a severity: 4xx warn, 5xx error, else info."""
    if 400 <= status <= 499:
        return Severity.WARNING
    if 500 <= status <= 599:
        return Severity.ERROR
    return Severity.INFO


class Recorder:
    """Accumulates timing, matched stages and log entries for one request.

    Args:
        sink: Destination for drained entries.
        context: Per-request mapping shared by nested dispatches (an ASGI
            scope, a WSGI environ, ...); used for the primality marker.
        instance_id: Value written as the marker when this recorder claims
            primality. Generated when omitted.
        root: Directory stage paths are reported relative to.
        filter: ``PathFilter``, ``path -> bool`` callable, or ``None`` for
            "never suppress".
        counters: Downstream counters merged into the summary.
        resolver: Source resolver; built from *root* when omitted.
        context_key: Key of the primality marker in *context*.
        clock: Monotonic clock returning seconds.
    """

    def __init__(
        self,
        sink: Sink,
        context: MutableMapping[str, Any],
        instance_id: str | None = None,
        root: str | os.PathLike[str] | None = None,
        filter: PathFilter | Callable[[str], Any] | None = None,
        *,
        counters: RequestCounters | None = None,
        resolver: SourceResolver | None = None,
        context_key: str = DEFAULT_CONTEXT_KEY,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.sink = sink
        self.root = Path(root) if root is not None else Path.cwd()
        self.filter = as_path_filter(filter)
        self.counters = counters if counters is not None else current_counters
        self.resolver = resolver if resolver is not None else SourceResolver(self.root)
        self.instance_id = instance_id or uuid.uuid4().hex
        self.entries: list[LogEntry] = []
        self.matches: list[StageRef] = []
        self._clock = clock
        self._started_at = clock()

        if context.get(context_key) is None:
            context[context_key] = self.instance_id
            self._primary = True
        else:
            self._primary = False
            log.debug("recorder_nested", instance_id=self.instance_id, owner=context[context_key])

    @property
    def primary(self) -> bool:
        """True when this recorder owns emission for its logical request."""
        return self._primary

    @property
    def elapsed(self) -> float:
        """Seconds since construction."""
        return max(0.0, self._clock() - self._started_at)

    def add_match(self, stage: StageRef) -> None:
        """Record a stage the router matched for this request."""
        self.matches.append(stage)

    def add(self, status: int, request: RequestInfo, trace: bool = False) -> None:
        """Queue the summary entry (and trace entries when *trace* is set).

        Args:
            status: Response status code.
            request: Request metadata.
            trace: Also queue one entry per matched stage, in match order.
        """
        handler = self.resolver.location(self.matches[-1]) if self.matches else None
        severity = severity_for_status(status)

        payload: dict[str, Any] = {
            "duration": round(self.elapsed, 4),
            "status": status,
            "verb": request.method,
            "path": request.path,
            "ip": request.client_ip,
            "remaining_path": request.remaining_path,
            "handler": handler,
            "params": request.params,
        }

        db_time = self.counters.accrued_time()
        if db_time is not None:
            payload["db"] = round(db_time, 6)

        db_queries = self.counters.operation_count()
        if db_queries is not None:
            payload["db_queries"] = db_queries

        if trace:
            for stage in self.matches:
                source = self.resolver.source_line(stage)
                path = self.resolver.relative(stage.path)
                self._append(
                    Severity.INFO,
                    f"  {source} ({path}:{stage.lineno})",
                    {"source": source, "path": path, "line": stage.lineno},
                )

        if self.filter.should_suppress(request.path):
            return

        self._append(severity, f"{request.method} {request.path}", payload)

    def drain(self) -> bool:
        """Write every queued entry to the sink, oldest first.

        Returns:
            False without writing when this recorder is not primary.
        """
        if not self._primary:
            return False

        for entry in self.entries:
            self.sink.write(entry.severity, entry.message, entry.payload)

        return True

    def reset(self) -> None:
        """Clear the downstream counters for the current context."""
        self.counters.reset()

    def _append(self, severity: Severity, message: str, payload: dict[str, Any] | None = None) -> None:
        self.entries.append(LogEntry(severity, message, payload))

    def __repr__(self) -> str:
        return (
            f"Recorder(instance_id={self.instance_id!r}, primary={self._primary}, "
            f"matches={len(self.matches)}, entries={len(self.entries)})"
        )


__all__ = [
    "DEFAULT_CONTEXT_KEY",
    "LogEntry",
    "Recorder",
    "severity_for_status",
]
