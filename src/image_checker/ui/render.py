"""Output rendering for the image-checker CLI.

Plain text only. Severity markers are the one decorated element, and they stay
uncolored under ``NO_COLOR``, ``--no-color`` or a non-terminal stream.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from image_checker.checks.models import ImageCheck, ImageChecks

_SEVERITY_COLORS: Final[dict[str, str]] = {
    "low": "\x1b[36m",
    "medium": "\x1b[33m",
    "high": "\x1b[31m",
    "critical": "\x1b[1;31m",
}
_RESET: Final[str] = "\x1b[0m"
_GUTTER: Final[str] = "  "


def color_enabled(stream: TextIO, *, no_color: bool = False) -> bool:
    if no_color or os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def format_table(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> list[str]:
    """Lay out ``rows`` under ``headers`` in left-aligned columns.

    Short rows are padded with blanks; cells past the header count are dropped.
    """

    width = len(headers)
    cells = [list(headers)] + [
        [str(row[i]) if i < len(row) else "" for i in range(width)] for row in rows
    ]
    sizes = [max(len(line[i]) for line in cells) for i in range(width)]
    rule = ["-" * size for size in sizes]

    lines = []
    for line in (cells[0], rule, *cells[1:]):
        joined = _GUTTER.join(cell.ljust(size) for cell, size in zip(line, sizes))
        lines.append(_GUTTER + joined.rstrip())
    return lines


class CLIRenderer:
    """Writes command output as deterministic plain text."""

    def __init__(
        self, *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = color_enabled(self._stream, no_color=no_color)

    def text(self, line: str = "") -> None:
        self._stream.write(line + "\n")

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        if title:
            self.text()
            self.text(title)
        for line in format_table(headers, rows):
            self.text(line)

    def findings(self, result: ImageChecks) -> None:
        if not result.checks:
            self.text("No findings.")
            return
        for check in result.checks:
            self._finding(check)

    def _finding(self, check: ImageCheck) -> None:
        severity = check.severity.value if check.severity is not None else "-"
        self.text(f"- [{check.status.value}] {self._paint(severity)} {check.name}")
        if self.verbose and check.markdown_description:
            for line in check.markdown_description.splitlines():
                self.text(f"    {line}")

    def _paint(self, severity: str) -> str:
        color = _SEVERITY_COLORS.get(severity)
        if self._color and color is not None:
            return f"{color}{severity}{_RESET}"
        return severity


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "color_enabled", "create_renderer", "format_table"]
