"""
Mock image-check provider driven by a timer and a cancellation token.

Each ``run_check`` call races two single-use sources:
- ``cancel``: emitted when the caller's cancellation token is cancelled
- ``done``: emitted when the simulated work timer fires

Whichever is dispatched first decides the result. The timer winning yields the
configured findings unchanged; cancellation yields an empty result. An
``Errored`` race outcome is surfaced as ``CheckProviderError``.

Decision logs go through an injected logger (``structlog`` by default).
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Final, Protocol

import structlog

from image_checker.checks.models import ImageCheck, ImageChecks, ImageInfo
from image_checker.events import Errored, EventEmitter, RaceOutcome, Won, first
from image_checker.utils.concurrency import CancellationToken, Clock, LoopClock
from image_checker.utils.disposable import Disposable

if TYPE_CHECKING:
    from image_checker.utils.concurrency import TimerHandle

CANCEL_EVENT: Final[str] = "cancel"
DONE_EVENT: Final[str] = "done"


class CheckProviderError(RuntimeError):
    """Raised when a provider cannot produce a check result."""


class CheckProvider(Protocol):
    async def check(
        self, image: ImageInfo, token: CancellationToken | None = None
    ) -> ImageChecks: ...


def settle_check(outcome: RaceOutcome, checks: Sequence[ImageCheck]) -> ImageChecks:
    """Map a race outcome to the check result for ``checks``."""

    if isinstance(outcome, Errored):
        message = f"check source {outcome.event!r} reported an error: {outcome.error!r}"
        if isinstance(outcome.error, BaseException):
            raise CheckProviderError(message) from outcome.error
        raise CheckProviderError(message)
    if outcome.event == DONE_EVENT:
        return ImageChecks.of(checks)
    return ImageChecks.empty()


class CheckOrchestrator:
    """Returns canned findings after ``timeout_ms`` unless cancelled first."""

    def __init__(
        self,
        checks: Sequence[ImageCheck],
        timeout_ms: int,
        *,
        label: str | None = None,
        clock: Clock | None = None,
        logger: Any | None = None,
    ) -> None:
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int):
            raise ValueError(f"timeout_ms must be an integer, got {type(timeout_ms).__name__}")
        if timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")

        self._checks = tuple(checks)
        self._timeout_ms = timeout_ms
        self._label = label
        self._clock: Clock = clock if clock is not None else LoopClock()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def checks(self) -> tuple[ImageCheck, ...]:
        return self._checks

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @property
    def label(self) -> str | None:
        return self._label

    async def check(self, image: ImageInfo, token: CancellationToken | None = None) -> ImageChecks:
        return await self.run_check(image, token)

    async def run_check(
        self,
        image: ImageInfo | None = None,
        token: CancellationToken | None = None,
    ) -> ImageChecks:
        """Resolve with the configured findings, or an empty result if cancelled first."""

        loop = asyncio.get_running_loop()
        result: asyncio.Future[ImageChecks] = loop.create_future()
        cancel_source = EventEmitter(name=CANCEL_EVENT)
        done_source = EventEmitter(name=DONE_EVENT)
        image_id = image.id if image is not None else None

        def on_settle(outcome: RaceOutcome) -> None:
            self._logger.info(
                "image_check_settled",
                label=self._label,
                image_id=image_id,
                outcome="won" if isinstance(outcome, Won) else "errored",
                winner=outcome.event,
            )
            if result.done():
                return
            try:
                result.set_result(settle_check(outcome, self._checks))
            except CheckProviderError as exc:
                result.set_exception(exc)

        def on_cancellation_requested() -> None:
            self._logger.info(
                "image_check_cancellation_requested",
                label=self._label,
                image_id=image_id,
            )
            cancel_source.emit(CANCEL_EVENT)

        self._logger.debug(
            "image_check_started",
            label=self._label,
            image_id=image_id,
            timeout_ms=self._timeout_ms,
        )

        # Attach the race first so a token that is already cancelled still wins.
        race = first([(cancel_source, CANCEL_EVENT), (done_source, DONE_EVENT)], on_settle)
        registration = (
            token.on_cancellation_requested(on_cancellation_requested)
            if token is not None
            else Disposable.noop()
        )
        timer: TimerHandle | None = None
        if not race.settled:
            timer = self._clock.call_later(
                self._timeout_ms / 1000.0, lambda: done_source.emit(DONE_EVENT)
            )

        try:
            return await result
        finally:
            if timer is not None:
                timer.cancel()
            registration.dispose()
            race.cancel()


class FailingCheckProvider:
    """Provider whose every check fails."""

    def __init__(self, message: str = "an internal error occured") -> None:
        self._message = message

    async def check(self, image: ImageInfo, token: CancellationToken | None = None) -> ImageChecks:
        raise CheckProviderError(self._message)


__all__ = [
    "CANCEL_EVENT",
    "DONE_EVENT",
    "CheckOrchestrator",
    "CheckProvider",
    "CheckProviderError",
    "FailingCheckProvider",
    "settle_check",
]
