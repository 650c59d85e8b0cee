"""In-process named-event emitter with per-listener failure isolation."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, Protocol, runtime_checkable

Listener = Callable[..., object]

ERROR_EVENT: Final[str] = "error"
_DEFAULT_ERROR_BUFFER: Final[int] = 256


@runtime_checkable
class EventSource(Protocol):
    """Anything that can register, remove, and emit named-event listeners."""

    def on(self, event: str, listener: Listener) -> object: ...

    def off(self, event: str, listener: Listener) -> object: ...

    def emit(self, event: str, *args: object) -> object: ...


class UnhandledErrorEvent(RuntimeError):
    """Raised when an ``error`` event is emitted with nobody listening for it."""

    def __init__(self, error: object) -> None:
        self.error = error
        super().__init__(f"unhandled error event: {error!r}")


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Listener failure captured without interrupting the emitter."""

    event: str
    target: str
    error_type: str
    message: str


class EventEmitter:
    """Named-event emitter.

    Listeners run synchronously in registration order. ``emit`` iterates over a
    snapshot taken when dispatch starts, but a listener removed by an earlier
    listener in the same dispatch is skipped.
    """

    def __init__(self, *, name: str | None = None) -> None:
        self.name = name or self.__class__.__name__
        self._listeners: dict[str, list[Listener]] = {}
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name!r} listeners={self.listener_count()}>"

    def on(self, event: str, listener: Listener) -> EventEmitter:
        """Register ``listener`` for ``event``. The same listener may be added twice."""

        if not isinstance(event, str) or not event:
            raise ValueError("event must be a non-empty string")
        if not callable(listener):
            raise ValueError("listener must be callable")
        self._listeners.setdefault(event, []).append(listener)
        return self

    def off(self, event: str, listener: Listener) -> EventEmitter:
        """Remove the most recent registration of ``listener`` for ``event``."""

        registered = self._listeners.get(event)
        if not registered:
            return self
        for index in range(len(registered) - 1, -1, -1):
            if registered[index] is listener:
                del registered[index]
                break
        if not registered:
            del self._listeners[event]
        return self

    def emit(self, event: str, *args: object) -> tuple[DispatchError, ...]:
        """Dispatch ``event`` to its listeners and return any listener failures."""

        snapshot = tuple(self._listeners.get(event, ()))
        if not snapshot and event == ERROR_EVENT:
            error = args[0] if args else None
            if isinstance(error, BaseException):
                raise error
            raise UnhandledErrorEvent(error)

        errors: list[DispatchError] = []
        for listener in snapshot:
            if not self._is_registered(event, listener):
                continue
            try:
                listener(*args)
            except Exception as exc:  # noqa: BLE001
                error = DispatchError(
                    event=event,
                    target=_callback_name(listener),
                    error_type=exc.__class__.__name__,
                    message=str(exc),
                )
                errors.append(error)

        if errors:
            self._dispatch_errors.extend(errors)
        return tuple(errors)

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, ()))
        return sum(len(items) for items in self._listeners.values())

    def event_names(self) -> tuple[str, ...]:
        return tuple(self._listeners)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        return tuple(self._dispatch_errors)

    def _is_registered(self, event: str, listener: Listener) -> bool:
        return any(item is listener for item in self._listeners.get(event, ()))


def _callback_name(callback: object) -> str:
    name = getattr(callback, "__name__", None)
    if isinstance(name, str) and name:
        return name
    return callback.__class__.__name__


__all__ = [
    "DispatchError",
    "ERROR_EVENT",
    "EventEmitter",
    "EventSource",
    "Listener",
    "UnhandledErrorEvent",
]
