"""Idempotent release handles returned by registrations."""

from __future__ import annotations

from collections.abc import Callable


class Disposable:
    """Wrap a release callback that runs at most once."""

    __slots__ = ("_callback",)

    def __init__(self, callback: Callable[[], object] | None = None) -> None:
        if callback is not None and not callable(callback):
            raise ValueError("callback must be callable")
        self._callback = callback

    @property
    def is_disposed(self) -> bool:
        return self._callback is None

    def dispose(self) -> None:
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()

    @classmethod
    def from_disposables(cls, *items: Disposable) -> Disposable:
        """Combine ``items`` into one handle that disposes them in reverse order."""

        members = list(items)

        def release() -> None:
            while members:
                members.pop().dispose()

        return cls(release)

    @classmethod
    def noop(cls) -> Disposable:
        return cls(None)


__all__ = ["Disposable"]
