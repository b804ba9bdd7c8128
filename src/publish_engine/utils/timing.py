"""
Deadline-bounded polling primitives.

All waits in the engine go through ``poll_until``: a fixed-interval poll that stops
on the first truthy result, on its deadline, or when its cancel token fires. The
clock is injectable so tests can run every loop against a fake clock.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall clock backed by ``time.monotonic`` / ``time.sleep``."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class PageClock(SystemClock):
    """Clock that sleeps through ``page.wait_for_timeout``.

    Playwright's sync API only dispatches protocol events (file chooser, navigation)
    while one of its calls is running, so waits that listen for events must sleep
    this way instead of blocking the thread.
    """

    def __init__(self, page: Any):
        self._page = page

    def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            self._page.wait_for_timeout(seconds * 1000)
        except Exception:
            # Page closed mid-wait; fall back to a plain sleep so the deadline holds.
            time.sleep(seconds)


class Deadline:
    """A point in time on a given clock."""

    def __init__(self, timeout_s: float, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self.timeout_s = max(0.0, float(timeout_s))
        self.started = self.clock.monotonic()
        self.expires_at = self.started + self.timeout_s

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock.monotonic())

    def expired(self) -> bool:
        return self.clock.monotonic() >= self.expires_at

    def elapsed(self) -> float:
        return self.clock.monotonic() - self.started

    def elapsed_ms(self) -> int:
        return int(round(self.elapsed() * 1000))

    def child(self, timeout_s: float) -> Deadline:
        """A deadline that never outlives this one."""
        return Deadline(min(float(timeout_s), self.remaining()), self.clock)


class CancelToken:
    """Cooperative cancellation, checked by every poll loop at iteration boundaries.

    A token bound to a deadline reports cancelled once the deadline passes, which is
    how the outer automation timeout reaches the inner waits.
    """

    def __init__(self, deadline: Deadline | None = None, parent: CancelToken | None = None):
        self._cancelled = False
        self._deadline = deadline
        self._parent = parent

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self._deadline is not None and self._deadline.expired():
            return True
        return self._parent is not None and self._parent.cancelled


def poll_until(
    probe: Callable[[], T | None],
    timeout_s: float,
    interval_s: float,
    clock: Clock | None = None,
    cancel: CancelToken | None = None,
) -> T | None:
    """Call ``probe`` until it returns something truthy or the deadline passes.

    The probe runs once immediately, then after every interval. Sleeps are clipped
    to the remaining time, so the loop ends within ``timeout_s`` plus one interval.

    Returns:
        The first truthy probe result, or None on timeout/cancellation.
    """
    clock = clock or SystemClock()
    deadline = Deadline(timeout_s, clock)
    interval_s = max(0.001, float(interval_s))

    while True:
        if cancel is not None and cancel.cancelled:
            return None
        result = probe()
        if result:
            return result
        if deadline.expired():
            return None
        clock.sleep(min(interval_s, max(deadline.remaining(), 0.001)))
