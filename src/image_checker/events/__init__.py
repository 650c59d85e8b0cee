"""Event sources and the first-event race primitive."""

from image_checker.events.emitter import (
    ERROR_EVENT,
    DispatchError,
    EventEmitter,
    EventSource,
    Listener,
    UnhandledErrorEvent,
)
from image_checker.events.race import (
    Errored,
    InvalidRaceError,
    RaceController,
    RaceOutcome,
    Won,
    first,
    first_event,
)

__all__ = [
    "DispatchError",
    "ERROR_EVENT",
    "Errored",
    "EventEmitter",
    "EventSource",
    "InvalidRaceError",
    "Listener",
    "RaceController",
    "RaceOutcome",
    "UnhandledErrorEvent",
    "Won",
    "first",
    "first_event",
]
