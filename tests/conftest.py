"""Shared fixtures: a manually advanced clock."""

from __future__ import annotations

from collections.abc import Callable

import pytest


class ManualTimer:
    def __init__(self, due_ms: int, callback: Callable[[], object]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """``Clock`` whose time only moves when a test calls ``advance``."""

    def __init__(self) -> None:
        self.now_ms = 0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], object]) -> ManualTimer:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        timer = ManualTimer(self.now_ms + round(delay * 1000), callback)
        self.timers.append(timer)
        return timer

    def advance(self, ms: int) -> None:
        self.now_ms += ms
        due = sorted(
            (t for t in self.timers if t.due_ms <= self.now_ms and not t.cancelled and not t.fired),
            key=lambda t: t.due_ms,
        )
        for timer in due:
            if timer.cancelled:
                continue
            timer.fired = True
            timer.callback()

    @property
    def pending(self) -> int:
        return sum(1 for t in self.timers if not t.cancelled and not t.fired)


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()
