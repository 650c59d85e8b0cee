"""
image-checker — unit tests for the first-event race

File: tests/unit/events/test_race.py
Last updated: 2026-10-19

Purpose
- Validate that ``first`` settles at most once and always leaves every watched
  source without race listeners.

What this test file should cover
- Winner selection and outcome payloads (``Won`` and ``Errored``).
- Full detachment after settle and after ``cancel``.
- Input validation happening before any listener is attached.
- Entry forms, duplicate event names, and order independence.
- Synchronous delivery from ``on()`` and re-entrant emits.
- Awaitable ``first_event`` and its cancellation.

Non-functional requirements
- No sleep-based synchronization.
"""

from __future__ import annotations

import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from image_checker.events import (
    Errored,
    EventEmitter,
    InvalidRaceError,
    RaceOutcome,
    Won,
    first,
    first_event,
)
from image_checker.events.emitter import Listener


class _Recorder:
    def __init__(self) -> None:
        self.outcomes: list[RaceOutcome] = []

    def __call__(self, outcome: RaceOutcome) -> None:
        self.outcomes.append(outcome)


class _EagerSource:
    """Source that delivers ``ready`` to a listener from inside ``on()``."""

    def __init__(self) -> None:
        self.inner = EventEmitter(name="eager")

    def on(self, event: str, listener: Listener) -> _EagerSource:
        self.inner.on(event, listener)
        if event == "ready":
            listener("now")
        return self

    def off(self, event: str, listener: Listener) -> _EagerSource:
        self.inner.off(event, listener)
        return self

    def emit(self, event: str, *args: object) -> object:
        return self.inner.emit(event, *args)


class _StuckSource(EventEmitter):
    """Emitter whose ``off()`` always fails."""

    def off(self, event: str, listener: Listener) -> _StuckSource:
        raise RuntimeError("off failed")


def test_first_event_wins_with_source_and_args() -> None:
    a = EventEmitter(name="a")
    b = EventEmitter(name="b")
    recorder = _Recorder()

    race = first([(a, "x"), (b, "y")], recorder)
    assert race.listener_count == 2
    assert not race.settled

    b.emit("y", 1, 2)

    assert recorder.outcomes == [Won(source=b, event="y", args=(1, 2))]
    assert race.settled
    assert race.outcome == recorder.outcomes[0]


def test_settle_detaches_every_listener() -> None:
    a = EventEmitter()
    b = EventEmitter()
    race = first([(a, "x", "z"), (b, "y")], _Recorder())

    a.emit("z")

    assert a.listener_count() == 0
    assert b.listener_count() == 0
    assert race.listener_count == 0


def test_later_events_never_settle_again() -> None:
    a = EventEmitter()
    b = EventEmitter()
    recorder = _Recorder()
    first([(a, "x"), (b, "y")], recorder)

    a.emit("x")
    a.emit("x")
    b.emit("y")

    assert len(recorder.outcomes) == 1
    assert recorder.outcomes[0].event == "x"


def test_fourth_listener_of_three_by_two_race_wins() -> None:
    sources = [EventEmitter(name=f"s{index}") for index in range(3)]
    recorder = _Recorder()
    pairs = [(source, "open", "close") for source in sources]

    race = first(pairs, recorder)
    assert race.listener_count == 6

    sources[1].emit("close", "bye")

    assert recorder.outcomes == [Won(source=sources[1], event="close", args=("bye",))]
    assert [source.listener_count() for source in sources] == [0, 0, 0]


def test_error_event_settles_as_errored() -> None:
    source = EventEmitter()
    recorder = _Recorder()
    failure = ConnectionResetError("reset")
    first([(source, "data", "error")], recorder)

    source.emit("error", failure, "extra")

    assert recorder.outcomes == [
        Errored(error=failure, source=source, event="error", args=(failure, "extra"))
    ]


def test_error_event_without_payload_has_no_error() -> None:
    source = EventEmitter()
    recorder = _Recorder()
    first([(source, "error")], recorder)

    source.emit("error")

    outcome = recorder.outcomes[0]
    assert isinstance(outcome, Errored)
    assert outcome.error is None
    assert outcome.args == ()


def test_cancel_detaches_without_settle_callback() -> None:
    a = EventEmitter()
    recorder = _Recorder()
    race = first([(a, "x", "y")], recorder)

    assert race.cancel() is True
    assert race.cancel() is False
    assert a.listener_count() == 0
    assert race.settled
    assert race.outcome is None

    a.emit("x")
    assert recorder.outcomes == []


def test_cancel_after_settle_is_noop() -> None:
    a = EventEmitter()
    recorder = _Recorder()
    race = first([(a, "x")], recorder)
    a.emit("x")

    assert race.cancel() is False
    assert race.outcome == Won(source=a, event="x", args=())
    assert len(recorder.outcomes) == 1


@pytest.mark.parametrize(
    "pairs",
    [
        [],
        "not-a-list",
        [("missing-source",)],
        [(object(), "x")],
    ],
)
def test_malformed_pairs_are_rejected(pairs: object) -> None:
    with pytest.raises(InvalidRaceError):
        first(pairs, _Recorder())  # type: ignore[arg-type]


def test_malformed_entry_attaches_nothing() -> None:
    good = EventEmitter()

    with pytest.raises(InvalidRaceError, match=r"pairs\[1\]"):
        first([(good, "x"), (good, 42)], _Recorder())

    with pytest.raises(InvalidRaceError):
        first([(good, "x"), (good, [])], _Recorder())

    assert good.listener_count() == 0


def test_invalid_race_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        first([], _Recorder())


def test_on_settle_must_be_callable() -> None:
    source = EventEmitter()

    with pytest.raises(InvalidRaceError, match="callable"):
        first([(source, "x")], None)  # type: ignore[arg-type]
    assert source.listener_count() == 0


def test_list_and_variadic_entry_forms_are_equivalent() -> None:
    a = EventEmitter()
    b = EventEmitter()

    first([(a, "x", "y")], _Recorder())
    first([(b, ["x", "y"])], _Recorder())

    assert a.event_names() == b.event_names() == ("x", "y")


def test_duplicate_event_names_collapse_to_one_listener() -> None:
    source = EventEmitter()
    recorder = _Recorder()

    race = first([(source, "x", "x")], recorder)
    assert source.listener_count("x") == 1
    assert race.listener_count == 1

    source.emit("x")
    assert len(recorder.outcomes) == 1


def test_other_listeners_keep_running_around_the_race() -> None:
    source = EventEmitter()
    calls: list[str] = []
    source.on("x", lambda: calls.append("before"))
    recorder = _Recorder()
    first([(source, "x")], recorder)
    source.on("x", lambda: calls.append("after"))

    source.emit("x")
    source.emit("x")

    assert calls == ["before", "after", "before", "after"]
    assert len(recorder.outcomes) == 1
    assert source.listener_count("x") == 2


def test_reentrant_emit_settles_once_and_skips_queued_listener() -> None:
    a = EventEmitter(name="a")
    b = EventEmitter(name="b")
    a.on("x", lambda: b.emit("y", "nested"))
    recorder = _Recorder()
    first([(a, "x"), (b, "y")], recorder)

    a.emit("x")

    assert recorder.outcomes == [Won(source=b, event="y", args=("nested",))]
    assert a.listener_count("x") == 1
    assert b.listener_count() == 0


def test_settle_callback_reemitting_does_not_recurse() -> None:
    source = EventEmitter()
    outcomes: list[RaceOutcome] = []

    def on_settle(outcome: RaceOutcome) -> None:
        outcomes.append(outcome)
        source.emit("x")

    first([(source, "x")], on_settle)
    source.emit("x")

    assert len(outcomes) == 1


def test_source_delivering_from_on_settles_and_stops_attaching() -> None:
    eager = _EagerSource()
    later = EventEmitter()
    recorder = _Recorder()

    race = first([(eager, "ready"), (later, "x")], recorder)

    assert recorder.outcomes == [Won(source=eager, event="ready", args=("now",))]
    assert race.settled
    assert eager.inner.listener_count() == 0
    assert later.listener_count() == 0


def test_failing_settle_callback_still_detaches() -> None:
    source = EventEmitter()

    def on_settle(outcome: RaceOutcome) -> None:
        raise RuntimeError("callback boom")

    race = first([(source, "x")], on_settle)
    errors = source.emit("x")

    assert [item.message for item in errors] == ["callback boom"]
    assert race.settled
    assert source.listener_count() == 0


def test_failing_off_still_settles_and_detaches_other_sources() -> None:
    stuck = _StuckSource(name="stuck")
    good = EventEmitter(name="good")
    recorder = _Recorder()

    race = first([(stuck, "x"), (good, "y")], recorder)
    errors = good.emit("y", 7)

    assert recorder.outcomes == [Won(source=good, event="y", args=(7,))]
    assert [item.message for item in errors] == ["off failed"]
    assert good.listener_count() == 0
    assert race.listener_count == 1
    assert race.settled

    stuck.emit("x")
    assert len(recorder.outcomes) == 1


def test_cancel_with_failing_off_detaches_the_rest_and_raises() -> None:
    stuck = _StuckSource(name="stuck")
    good = EventEmitter(name="good")
    recorder = _Recorder()
    race = first([(good, "a"), (stuck, "x"), (good, "b")], recorder)

    with pytest.raises(RuntimeError, match="off failed"):
        race.cancel()

    assert good.listener_count() == 0
    assert race.listener_count == 1
    assert recorder.outcomes == []
    assert race.cancel() is False


@given(
    layout=st.lists(
        st.lists(st.sampled_from(["a", "b", "c", "error"]), min_size=1, max_size=3, unique=True),
        min_size=1,
        max_size=4,
    ),
    data=st.data(),
)
def test_any_trigger_settles_exactly_once_and_cleans_up(
    layout: list[list[str]], data: st.DataObject
) -> None:
    sources = [EventEmitter(name=f"s{index}") for index in range(len(layout))]
    recorder = _Recorder()
    first([(source, *events) for source, events in zip(sources, layout, strict=True)], recorder)

    triggers = data.draw(
        st.lists(
            st.integers(min_value=0, max_value=len(sources) - 1).flatmap(
                lambda index: st.tuples(st.just(index), st.sampled_from(layout[index]))
            ),
            min_size=1,
            max_size=6,
        )
    )
    for index, event in triggers:
        if event == "error" and sources[index].listener_count("error") == 0:
            continue
        sources[index].emit(event, index)

    winner_index, winner_event = triggers[0]
    assert len(recorder.outcomes) == 1
    assert recorder.outcomes[0].source is sources[winner_index]
    assert recorder.outcomes[0].event == winner_event
    assert all(source.listener_count() == 0 for source in sources)


async def test_first_event_resolves_with_outcome() -> None:
    source = EventEmitter()
    loop = asyncio.get_running_loop()
    loop.call_soon(source.emit, "ready", "payload")

    outcome = await first_event([(source, "ready", "error")])

    assert outcome == Won(source=source, event="ready", args=("payload",))
    assert source.listener_count() == 0


async def test_cancelling_first_event_detaches_listeners() -> None:
    source = EventEmitter()
    task = asyncio.create_task(first_event([(source, "ready")]))
    await asyncio.sleep(0)
    assert source.listener_count("ready") == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert source.listener_count() == 0
