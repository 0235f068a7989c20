"""
Shared test configuration.

Adds src/ to sys.path so flat modules (correlation_engine, models, ...)
and the analytics/pipeline packages import with plain `import module_name`,
and provides small event builders used across the suite.
"""

import os
import sys
from datetime import datetime, timedelta

import pytest

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

from models import Event  # noqa: E402


class FakeClock:
    """Callable clock that tests advance by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_event(ts: datetime, *item_ids: str, **attributes) -> Event:
    attrs = dict(attributes)
    attrs["item_ids"] = list(item_ids)
    return Event(timestamp=ts, attributes=attrs)


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 3, 2, 8, 0)


@pytest.fixture
def event():
    return make_event


@pytest.fixture
def clock(t0):
    return FakeClock(t0)
