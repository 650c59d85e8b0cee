"""
image-checker — first-event race across event sources.

File: src/image_checker/events/race.py
Last updated: 2026-10-19

Purpose
- Wait for whichever of several (source, event name) pairs fires first and
  report it exactly once.

Contract
- ``first(pairs, on_settle)`` attaches exactly one listener per distinct
  (source, event name) in input order and returns a ``RaceController``.
- Malformed ``pairs`` raise ``InvalidRaceError`` before anything is attached.
- The first delivered event settles the race: every attached listener is
  detached, then ``on_settle`` receives a ``Won`` or ``Errored`` outcome.
- ``RaceController.cancel()`` detaches everything without calling
  ``on_settle``. It is a no-op once the race has settled.

Concurrency
- Designed for a single-threaded event loop. Each listener checks and sets the
  settled flag inside its own dispatch turn, so a listener that is already
  queued by its source when the race settles does nothing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeAlias, cast

from image_checker.events.emitter import ERROR_EVENT, EventSource, Listener


class InvalidRaceError(ValueError):
    """Raised when race pairs are not ``(source, event, ...)`` entries."""


@dataclass(frozen=True, slots=True)
class Won:
    """A watched event fired first."""

    source: EventSource
    event: str
    args: tuple[object, ...]


@dataclass(frozen=True, slots=True)
class Errored:
    """A watched source emitted its ``error`` event first."""

    error: object
    source: EventSource
    event: str
    args: tuple[object, ...]


RaceOutcome: TypeAlias = Won | Errored
SettleCallback = Callable[[RaceOutcome], object]
RaceEntry = Sequence[object]


@dataclass(frozen=True, slots=True)
class Subscription:
    source: EventSource
    event: str
    listener: Listener


class RaceController:
    """Handle for one race. Settles at most once and is never reused."""

    def __init__(self, on_settle: SettleCallback) -> None:
        self._on_settle: SettleCallback | None = on_settle
        self._subscriptions: list[Subscription] = []
        self._settled = False
        self._outcome: RaceOutcome | None = None

    def __repr__(self) -> str:
        state = "settled" if self._settled else "pending"
        return f"<RaceController {state} listeners={len(self._subscriptions)}>"

    @property
    def settled(self) -> bool:
        """``True`` once an event has won or the race was cancelled."""

        return self._settled

    @property
    def outcome(self) -> RaceOutcome | None:
        """Winning outcome, or ``None`` while pending or after ``cancel()``."""

        return self._outcome

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def cancel(self) -> bool:
        """Detach all listeners. Returns ``False`` when already settled."""

        if self._settled:
            return False
        self._settled = True
        self._on_settle = None
        self._cleanup()
        return True

    def _attach(self, source: EventSource, event: str) -> None:
        def listener(*args: object) -> None:
            self._on_event(source, event, args)

        listener.__name__ = f"race_listener[{event}]"
        source.on(event, listener)
        if self._settled:
            # The source delivered from inside on(); this listener missed cleanup.
            source.off(event, listener)
            return
        self._subscriptions.append(Subscription(source=source, event=event, listener=listener))

    def _on_event(self, source: EventSource, event: str, args: tuple[object, ...]) -> None:
        if self._settled:
            return
        self._settled = True

        outcome: RaceOutcome
        if event == ERROR_EVENT:
            error = args[0] if args else None
            outcome = Errored(error=error, source=source, event=event, args=args)
        else:
            outcome = Won(source=source, event=event, args=args)
        self._outcome = outcome

        callback, self._on_settle = self._on_settle, None
        try:
            self._cleanup()
        finally:
            if callback is not None:
                callback(outcome)

    def _cleanup(self) -> None:
        """Detach every subscription, then raise the first ``off()`` failure.

        Subscriptions whose ``off()`` raised stay in ``listener_count``.
        """

        failure: Exception | None = None
        stuck: list[Subscription] = []
        for item in self._subscriptions:
            try:
                item.source.off(item.event, item.listener)
            except Exception as exc:
                stuck.append(item)
                if failure is None:
                    failure = exc
        self._subscriptions = stuck
        if failure is not None:
            raise failure


def first(pairs: Sequence[RaceEntry], on_settle: SettleCallback) -> RaceController:
    """Race every (source, event name) in ``pairs`` and settle on the first to fire."""

    if not callable(on_settle):
        raise InvalidRaceError("on_settle must be callable")
    normalized = _normalize_pairs(pairs)

    controller = RaceController(on_settle)
    try:
        for source, events in normalized:
            for event in events:
                # A source may deliver synchronously from on(); stop attaching once settled.
                if controller.settled:
                    return controller
                controller._attach(source, event)
    except BaseException:
        controller.cancel()
        raise
    return controller


async def first_event(pairs: Sequence[RaceEntry]) -> RaceOutcome:
    """Await the first event among ``pairs`` on the running loop.

    Cancelling the awaiting task cancels the race and detaches its listeners.
    """

    loop = asyncio.get_running_loop()
    future: asyncio.Future[RaceOutcome] = loop.create_future()

    def on_settle(outcome: RaceOutcome) -> None:
        if not future.done():
            future.set_result(outcome)

    controller = first(pairs, on_settle)
    try:
        return await future
    finally:
        controller.cancel()


def _normalize_pairs(pairs: object) -> list[tuple[EventSource, tuple[str, ...]]]:
    if not _is_sequence(pairs):
        raise InvalidRaceError("pairs must be a sequence of (source, event, ...) entries")
    entries = cast("Sequence[object]", pairs)
    if not entries:
        raise InvalidRaceError("pairs must contain at least one entry")

    normalized: list[tuple[EventSource, tuple[str, ...]]] = []
    for index, raw_entry in enumerate(entries):
        if not _is_sequence(raw_entry):
            raise InvalidRaceError(f"pairs[{index}] must be (source, event, ...)")
        entry = cast("Sequence[object]", raw_entry)
        if len(entry) < 2:
            raise InvalidRaceError(f"pairs[{index}] must be (source, event, ...)")

        source = cast("EventSource", entry[0])
        if not callable(getattr(source, "on", None)) or not callable(getattr(source, "off", None)):
            raise InvalidRaceError(f"pairs[{index}] source must provide on() and off()")

        raw_names: Sequence[object] = entry[1:]
        if len(raw_names) == 1 and _is_sequence(raw_names[0]):
            raw_names = cast("Sequence[object]", raw_names[0])
        if not raw_names:
            raise InvalidRaceError(f"pairs[{index}] must name at least one event")

        names: list[str] = []
        for position, name in enumerate(raw_names):
            if not isinstance(name, str) or not name:
                raise InvalidRaceError(
                    f"pairs[{index}] event #{position} must be a non-empty string"
                )
            if name not in names:
                names.append(name)
        normalized.append((source, tuple(names)))
    return normalized


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


__all__ = [
    "Errored",
    "InvalidRaceError",
    "RaceController",
    "RaceEntry",
    "RaceOutcome",
    "SettleCallback",
    "Subscription",
    "Won",
    "first",
    "first_event",
]
