from __future__ import annotations

from datetime import date

import pytest

from availability_engine.cache import SlotCache
from availability_engine.fetcher import SlotFetcher
from availability_engine.mock_client import MockSchedulingApi

TODAY = date(2026, 10, 19)


class FakeTimer:
    def __init__(self, due: float, callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers only fire when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [t for t in self.pending if t.due <= self.now]
        for timer in sorted(due, key=lambda t: t.due):
            self.timers.remove(timer)
            timer.callback()


@pytest.fixture
def scheduler():
    """Create a manual scheduler for deterministic debounce timing."""
    return FakeScheduler()


@pytest.fixture
def api():
    """Create an in-memory Scheduling API with the default sedes and templates."""
    return MockSchedulingApi()


@pytest.fixture
def cache():
    """Create a fresh slot cache, isolated from the process-wide one."""
    return SlotCache()


@pytest.fixture
def fetcher(api, cache):
    """Create a slot fetcher over the mock API and the fresh cache."""
    return SlotFetcher(api, cache)
