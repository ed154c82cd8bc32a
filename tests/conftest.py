"""
Shared pytest fixtures for stagelog tests.

This module provides:
- A recording sink that keeps every write in memory
- Isolated request counters per test
- A deterministic clock for duration assertions
- A scratch "application" source file with stages at known lines
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

# Ensure stagelog package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stagelog.counters import RequestCounters
from stagelog.sink import Severity
from stagelog.source import StageRef, clear_source_cache


# =============================================================================
# Test doubles
# =============================================================================


class RecordingSink:
    """Sink that appends every write to ``records``."""

    def __init__(self) -> None:
        self.records: list[tuple[Severity, str, dict[str, Any] | None]] = []

    def write(self, severity: Severity, message: str, payload: Mapping[str, Any] | None = None) -> None:
        self.records.append((severity, message, dict(payload) if payload is not None else None))

    @property
    def summaries(self) -> list[tuple[Severity, str, dict[str, Any] | None]]:
        return [r for r in self.records if r[2] is not None and "status" in r[2]]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def counters() -> RequestCounters:
    """Fresh counters with their own context variable."""
    return RequestCounters(name="stagelog_test_counters")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _clear_source_cache():
    clear_source_cache()
    yield
    clear_source_cache()


APP_SOURCE_LINES = {
    10: "    def list_orders(request):",
    20: "    @router.get('/orders/{order_id}')",
    30: "    if order.is_open:  ",
}


@pytest.fixture
def app_root(tmp_path: Path) -> Path:
    """Scratch application tree with ``app/routes.py`` holding stages at lines 10, 20, 30."""
    lines = [f"# filler {n}" for n in range(1, 41)]
    for lineno, text in APP_SOURCE_LINES.items():
        lines[lineno - 1] = text
    routes = tmp_path / "app" / "routes.py"
    routes.parent.mkdir()
    routes.write_text("\n".join(lines) + "\n")
    return tmp_path


@pytest.fixture
def stage_x(app_root: Path) -> StageRef:
    return StageRef(path=str(app_root / "app" / "routes.py"), lineno=10, name="list_orders")


@pytest.fixture
def stage_y(app_root: Path) -> StageRef:
    return StageRef(path=str(app_root / "app" / "routes.py"), lineno=20, name="get_order")
