"""Cooperative cancellation and timer scheduling used by check providers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from image_checker.events.emitter import DispatchError
from image_checker.utils.disposable import Disposable

CancellationCallback = Callable[[], object]


class CancellationToken:
    """Read side of a cancellation request.

    Callbacks registered with ``on_cancellation_requested`` run once, in
    registration order, when the owning source cancels. A failing callback
    does not stop the rest; its failure is kept as a ``DispatchError``.
    Registering after cancellation runs the callback immediately.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: dict[int, CancellationCallback] = {}
        self._next_id = 1
        self._event: asyncio.Event | None = None
        self._callback_errors: list[DispatchError] = []

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled

    def on_cancellation_requested(self, callback: CancellationCallback) -> Disposable:
        if not callable(callback):
            raise ValueError("callback must be callable")
        if self._cancelled:
            callback()
            return Disposable.noop()

        registration_id = self._next_id
        self._next_id += 1
        self._callbacks[registration_id] = callback
        return Disposable(lambda: self._callbacks.pop(registration_id, None))

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def callback_errors(self) -> tuple[DispatchError, ...]:
        return tuple(self._callback_errors)

    def _cancel(self) -> tuple[DispatchError, ...]:
        if self._cancelled:
            return ()
        self._cancelled = True
        if self._event is not None:
            self._event.set()

        callbacks = tuple(self._callbacks.values())
        self._callbacks.clear()
        errors: list[DispatchError] = []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:  # noqa: BLE001
                errors.append(
                    DispatchError(
                        event="cancellation_requested",
                        target=getattr(callback, "__name__", type(callback).__name__),
                        error_type=type(exc).__name__,
                        message=str(exc),
                    )
                )
        self._callback_errors.extend(errors)
        return tuple(errors)


class CancellationTokenSource:
    """Write side that owns a ``CancellationToken``."""

    def __init__(self) -> None:
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    def cancel(self) -> tuple[DispatchError, ...]:
        """Request cancellation and return failures from this call's callbacks."""

        return self._token._cancel()


class TimerHandle(Protocol):
    def cancel(self) -> object: ...


class Clock(Protocol):
    """Schedules a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[[], object]) -> TimerHandle: ...


class LoopClock:
    """``Clock`` backed by the running asyncio loop."""

    def call_later(self, delay: float, callback: Callable[[], object]) -> asyncio.TimerHandle:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        return asyncio.get_running_loop().call_later(delay, callback)


__all__ = [
    "CancellationCallback",
    "CancellationToken",
    "CancellationTokenSource",
    "Clock",
    "LoopClock",
    "TimerHandle",
]
