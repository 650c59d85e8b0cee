"""Process entrypoint: runs the CLI and turns failures into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Exit codes shared by every command."""

    SUCCESS = 0
    CHECK_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run ``image-checker`` with ``argv`` and return the process exit code."""

    try:
        from image_checker.ui.cli import run_cli

        return _coerce_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - last line before the process exits.
        code = exit_code_for(exc)
        _report(exc, code)
        return int(code)


def main() -> None:
    raise SystemExit(cli_entrypoint())


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map ``exc`` to an exit code, looking through its cause and context."""

    from image_checker.checks.orchestrator import CheckProviderError
    from image_checker.config import ConfigLoadError, ConfigValidationError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
        ((CheckProviderError,), ExitCode.CHECK_FAILED),
    )
    for link in _causes(exc):
        for kinds, code in routes:
            if isinstance(link, kinds):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(code, int) and not isinstance(code, bool):
        try:
            return int(ExitCode(code))
        except ValueError:
            return int(ExitCode.INTERNAL_ERROR)
    if isinstance(code, str) and code.strip():
        print(code.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
    else:
        print(str(exc).strip() or type(exc).__name__, file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for", "main"]
