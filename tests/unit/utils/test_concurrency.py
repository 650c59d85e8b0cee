"""Regression tests for cancellation tokens and the loop-backed clock."""

from __future__ import annotations

import asyncio

import pytest

from image_checker.utils import CancellationTokenSource, LoopClock


def test_callbacks_run_once_in_registration_order() -> None:
    source = CancellationTokenSource()
    calls: list[str] = []
    source.token.on_cancellation_requested(lambda: calls.append("a"))
    source.token.on_cancellation_requested(lambda: calls.append("b"))

    source.cancel()
    source.cancel()

    assert calls == ["a", "b"]
    assert source.token.is_cancellation_requested


def test_registration_after_cancel_runs_immediately() -> None:
    source = CancellationTokenSource()
    source.cancel()
    calls: list[int] = []

    registration = source.token.on_cancellation_requested(lambda: calls.append(1))

    assert calls == [1]
    assert registration.is_disposed


def test_disposed_registration_is_not_called() -> None:
    source = CancellationTokenSource()
    calls: list[int] = []
    registration = source.token.on_cancellation_requested(lambda: calls.append(1))

    registration.dispose()
    source.cancel()

    assert calls == []


def test_failing_callback_does_not_block_others() -> None:
    source = CancellationTokenSource()
    calls: list[str] = []

    def broken() -> None:
        raise RuntimeError("callback boom")

    source.token.on_cancellation_requested(broken)
    source.token.on_cancellation_requested(lambda: calls.append("ok"))

    errors = source.cancel()

    assert calls == ["ok"]
    assert [(item.target, item.error_type, item.message) for item in errors] == [
        ("broken", "RuntimeError", "callback boom")
    ]
    assert source.token.callback_errors() == errors
    assert source.cancel() == ()


def test_register_rejects_non_callable() -> None:
    with pytest.raises(ValueError, match="callable"):
        CancellationTokenSource().token.on_cancellation_requested(None)  # type: ignore[arg-type]


async def test_wait_returns_after_cancel() -> None:
    source = CancellationTokenSource()
    waiter = asyncio.create_task(source.token.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    source.cancel()
    await asyncio.wait_for(waiter, timeout=1.0)

    await source.token.wait()


async def test_loop_clock_schedules_on_running_loop() -> None:
    fired = asyncio.Event()
    handle = LoopClock().call_later(0, fired.set)

    await asyncio.wait_for(fired.wait(), timeout=1.0)
    assert isinstance(handle, asyncio.TimerHandle)


async def test_loop_clock_rejects_negative_delay() -> None:
    with pytest.raises(ValueError, match="delay"):
        LoopClock().call_later(-0.001, lambda: None)
