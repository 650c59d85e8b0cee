"""Shared utilities: cancellation, timers, and disposable handles."""

from image_checker.utils.concurrency import (
    CancellationToken,
    CancellationTokenSource,
    Clock,
    LoopClock,
    TimerHandle,
)
from image_checker.utils.disposable import Disposable

__all__ = [
    "CancellationToken",
    "CancellationTokenSource",
    "Clock",
    "Disposable",
    "LoopClock",
    "TimerHandle",
]
