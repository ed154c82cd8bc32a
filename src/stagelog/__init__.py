"""
stagelog - per-request instrumentation for ASGI applications.

Records timing, matched stages and downstream database usage while a
request is handled, then writes one structured log record per logical
request (plus, when tracing, one record per matched stage).

Usage:
    from fastapi import FastAPI
    from stagelog import configure_logging, install_request_logger

    configure_logging(level="INFO")
    app = FastAPI()
    install_request_logger(app)

Lower level:
    from stagelog import Recorder, RequestInfo, StageRef

    recorder = Recorder(sink, scope, root="/srv/app")
    recorder.add_match(StageRef.from_callable(handler))
    recorder.add(200, RequestInfo(method="GET", path="/orders"))
    if recorder.drain():
        recorder.reset()
"""

from stagelog.counters import RequestCounters, current_counters
from stagelog.errors import ConfigError, StagelogError
from stagelog.filters import (
    AnyFilter,
    CallableFilter,
    NeverSuppress,
    PathFilter,
    PatternFilter,
    PrefixFilter,
    as_path_filter,
)
from stagelog.logging import configure_logging, get_logger
from stagelog.middleware import (
    RequestLoggerMiddleware,
    StageRoute,
    current_recorder,
    install_request_logger,
    mark_stage,
)
from stagelog.recorder import DEFAULT_CONTEXT_KEY, LogEntry, Recorder, severity_for_status
from stagelog.request import RequestInfo
from stagelog.settings import StagelogSettings, get_settings
from stagelog.sink import Severity, Sink, StructlogSink
from stagelog.source import SourceResolver, StageRef

__version__ = "0.1.0"

__all__ = [
    # Core
    "Recorder",
    "LogEntry",
    "severity_for_status",
    "DEFAULT_CONTEXT_KEY",
    # Counters
    "RequestCounters",
    "current_counters",
    # Collaborators
    "RequestInfo",
    "Severity",
    "Sink",
    "StructlogSink",
    "SourceResolver",
    "StageRef",
    # Filters
    "PathFilter",
    "NeverSuppress",
    "PrefixFilter",
    "PatternFilter",
    "CallableFilter",
    "AnyFilter",
    "as_path_filter",
    # Integration
    "RequestLoggerMiddleware",
    "StageRoute",
    "current_recorder",
    "install_request_logger",
    "mark_stage",
    # Config / logging / errors
    "StagelogSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "StagelogError",
    "ConfigError",
]
