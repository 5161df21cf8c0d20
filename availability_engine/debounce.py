"""Debounce coalescer with a pluggable timer source."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything able to run a callback after a delay and cancel it."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Schedules on the event loop that is running when the timer is armed."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class Debouncer:
    """Collapses a burst of calls into one delayed call with the latest arguments."""

    def __init__(self, fn: Callable[..., Any], delay_ms: float, scheduler: Scheduler | None = None) -> None:
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self._fn = fn
        self._delay = delay_ms / 1000
        self._scheduler = scheduler or AsyncioScheduler()
        self._handle: TimerHandle | None = None
        self._torn_down = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        if self._torn_down:
            logger.debug("Ignoring call on torn down debouncer for %r", self._fn)
            return
        self.cancel()
        self._handle = self._scheduler.call_later(self._delay, lambda: self._fire(args, kwargs))

    def _fire(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        self._handle = None
        if self._torn_down:
            return
        self._fn(*args, **kwargs)

    def cancel(self) -> None:
        """Drop the pending invocation, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def teardown(self) -> None:
        """Cancel the pending invocation and refuse any further calls."""
        self.cancel()
        self._torn_down = True


def debounce(fn: Callable[..., Any], delay_ms: float, scheduler: Scheduler | None = None) -> Debouncer:
    return Debouncer(fn, delay_ms, scheduler)
