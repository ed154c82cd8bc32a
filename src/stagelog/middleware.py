"""Request logging middleware — one summary record per request.

Manifesto:
    Routers should not have to log.  The middleware times the request,
    learns which stages the router matched, and writes a single record
    at a severity that reflects the response status.

Wiring::

    from fastapi import FastAPI
    from stagelog.middleware import RequestLoggerMiddleware, StageRoute

    app = FastAPI()
    app.router.route_class = StageRoute
    app.add_middleware(RequestLoggerMiddleware, trace_all=False)

Stages are reported by :class:`StageRoute` when routing matches an
endpoint, by :func:`mark_stage` from inside handlers or dependencies,
and, when neither reported anything, by the endpoint the router
resolved.

Tags:
    stagelog, middleware, starlette, fastapi, request-logging, tracing

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
from collections.abc import Callable
from functools import cached_property
from typing import Any

from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match
from starlette.types import ASGIApp, Scope

from stagelog.counters import RequestCounters, current_counters
from stagelog.filters import PathFilter, as_path_filter
from stagelog.logging import get_logger
from stagelog.recorder import DEFAULT_CONTEXT_KEY, Recorder
from stagelog.request import RequestInfo
from stagelog.settings import StagelogSettings, get_settings
from stagelog.sink import Sink, StructlogSink
from stagelog.source import SourceResolver, StageRef

RECORDER_SCOPE_KEY = "stagelog.recorder"
SCOPE_ID_KEY = "stagelog.scope_id"

_FALSY_HEADER_VALUES = frozenset({"", "0", "false", "no", "off"})

log = get_logger(__name__)


def current_recorder(request: Request) -> Recorder | None:
    """Recorder handling *request*, if the middleware is installed."""
    return request.scope.get(RECORDER_SCOPE_KEY)


def mark_stage(request: Request, stage: StageRef | None = None) -> StageRef | None:
    """Report a stage for *request*; defaults to the line that called this.

    Returns the recorded stage, or None when no recorder is active.
    """
    recorder = current_recorder(request)
    if recorder is None:
        return None
    if stage is None:
        stage = StageRef.from_caller(depth=1)
    recorder.add_match(stage)
    return stage


class StageRoute(APIRoute):
    """``APIRoute`` that reports its endpoint to the active recorder on a full match.

    Only matches against the request's own scope count. Starlette's
    trailing-slash lookup matches routes against a copy of the scope and
    then redirects without running them.
    """

    @cached_property
    def stage_ref(self) -> StageRef | None:
        try:
            return StageRef.from_callable(self.endpoint)
        except (TypeError, OSError) as e:
            log.debug("endpoint_location_unavailable", endpoint=repr(self.endpoint), error=str(e))
            return None

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match is Match.FULL and scope.get(SCOPE_ID_KEY) == id(scope):
            recorder = scope.get(RECORDER_SCOPE_KEY)
            if recorder is not None and self.stage_ref is not None:
                recorder.add_match(self.stage_ref)
        return match, child_scope


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Record every request and drain one log record per logical request.

    Args:
        app: Wrapped ASGI application.
        sink: Where records go; a :class:`StructlogSink` by default.
        root: Directory handler paths are reported relative to (default: cwd).
        filter: Suppresses summary records by path.
        trace_all: Trace every request.
        trace_missed: Trace requests answered with 404.
        trace_header: Header that enables tracing for a single request.
        context_key: Scope key of the primality marker.
        counters: Downstream counters merged into each summary.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        sink: Sink | None = None,
        root: str | os.PathLike[str] | None = None,
        filter: PathFilter | Callable[[str], Any] | None = None,
        trace_all: bool = False,
        trace_missed: bool = True,
        trace_header: str | None = "X-Stagelog-Trace",
        context_key: str = DEFAULT_CONTEXT_KEY,
        counters: RequestCounters | None = None,
    ) -> None:
        super().__init__(app)
        self.sink = sink if sink is not None else StructlogSink()
        self.root = root if root is not None else os.getcwd()
        self.filter = as_path_filter(filter)
        self.trace_all = trace_all
        self.trace_missed = trace_missed
        self.trace_header = trace_header
        self.context_key = context_key
        self.counters = counters if counters is not None else current_counters
        self.resolver = SourceResolver(self.root)

    @classmethod
    def from_settings(cls, app: ASGIApp, settings: StagelogSettings, **overrides: Any) -> RequestLoggerMiddleware:
        """Build a middleware from :class:`StagelogSettings`; keyword overrides win."""
        return cls(app, **{**settings_options(settings), **overrides})

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        scope = request.scope
        recorder = Recorder(
            self.sink,
            scope,
            root=self.root,
            filter=self.filter,
            counters=self.counters,
            resolver=self.resolver,
            context_key=self.context_key,
        )
        previous = scope.get(RECORDER_SCOPE_KEY)
        scope[RECORDER_SCOPE_KEY] = recorder
        scope[SCOPE_ID_KEY] = id(scope)
        self.counters.activate()

        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            if previous is None:
                scope.pop(RECORDER_SCOPE_KEY, None)
            else:
                scope[RECORDER_SCOPE_KEY] = previous
            self._finish(recorder, request, status)

    def should_trace(self, request: Request, status: int) -> bool:
        if self.trace_all:
            return True
        if self.trace_missed and status == 404:
            return True
        if self.trace_header:
            value = request.headers.get(self.trace_header)
            return value is not None and value.strip().lower() not in _FALSY_HEADER_VALUES
        return False

    def _finish(self, recorder: Recorder, request: Request, status: int) -> None:
        if not recorder.matches:
            self._record_endpoint(recorder, request.scope)

        recorder.add(status, RequestInfo.from_starlette(request), trace=self.should_trace(request, status))

        if recorder.drain():
            recorder.reset()

    def _record_endpoint(self, recorder: Recorder, scope: Scope) -> None:
        endpoint = scope.get("endpoint")
        if endpoint is None:
            return
        try:
            recorder.add_match(StageRef.from_callable(endpoint))
        except (TypeError, OSError) as e:
            log.debug("endpoint_location_unavailable", endpoint=repr(endpoint), error=str(e))


def settings_options(settings: StagelogSettings) -> dict[str, Any]:
    """Middleware keyword arguments derived from *settings*."""
    return {
        "root": settings.root,
        "filter": settings.build_filter(),
        "trace_all": settings.trace_all,
        "trace_missed": settings.trace_missed,
        "trace_header": settings.trace_header,
        "context_key": settings.context_key,
    }


def install_request_logger(app: Any, settings: StagelogSettings | None = None, **overrides: Any) -> None:
    """Add :class:`RequestLoggerMiddleware` to a Starlette/FastAPI *app* from settings.

    Routes added afterwards through ``app.router`` use :class:`StageRoute`.
    """
    settings = settings or get_settings()
    if hasattr(app, "router") and hasattr(app.router, "route_class"):
        app.router.route_class = StageRoute
    app.add_middleware(RequestLoggerMiddleware, **{**settings_options(settings), **overrides})


__all__ = [
    "RECORDER_SCOPE_KEY",
    "SCOPE_ID_KEY",
    "RequestLoggerMiddleware",
    "StageRoute",
    "current_recorder",
    "install_request_logger",
    "mark_stage",
    "settings_options",
]
