"""Unit tests for plain-text CLI rendering."""

from __future__ import annotations

import io

import pytest

from image_checker.checks import CheckSeverity, CheckStatus, ImageCheck, ImageChecks
from image_checker.ui.render import CLIRenderer, color_enabled, format_table


class _Terminal(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_format_table_aligns_columns_and_pads_short_rows() -> None:
    lines = format_table(("NAME", "N"), [("alpha", 1), ("b",), ("c", 22, "dropped")])

    assert lines == [
        "  NAME   N",
        "  -----  --",
        "  alpha  1",
        "  b",
        "  c      22",
    ]


def test_table_without_rows_prints_nothing() -> None:
    out = io.StringIO()
    CLIRenderer(stream=out).table(("A",), [], title="Empty:")

    assert out.getvalue() == ""


def test_findings_list_descriptions_only_when_verbose() -> None:
    result = ImageChecks.of(
        (
            ImageCheck("check 1", CheckStatus.FAILED, CheckSeverity.HIGH, "line one\nline two"),
            ImageCheck("check 2", CheckStatus.SUCCESS),
        )
    )
    quiet, verbose = io.StringIO(), io.StringIO()

    CLIRenderer(stream=quiet).findings(result)
    CLIRenderer(stream=verbose, verbose=True).findings(result)

    assert quiet.getvalue().splitlines() == [
        "- [failed] high check 1",
        "- [success] - check 2",
    ]
    assert "    line two" in verbose.getvalue().splitlines()


def test_empty_result_says_so() -> None:
    out = io.StringIO()
    CLIRenderer(stream=out).findings(ImageChecks.empty())

    assert out.getvalue() == "No findings.\n"


def test_color_follows_terminal_and_opt_outs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)

    assert color_enabled(_Terminal()) is True
    assert color_enabled(io.StringIO()) is False
    assert color_enabled(_Terminal(), no_color=True) is False

    monkeypatch.setenv("NO_COLOR", "1")
    assert color_enabled(_Terminal()) is False


def test_severity_is_colored_on_a_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    out = _Terminal()

    CLIRenderer(stream=out).findings(
        ImageChecks.of((ImageCheck("x", CheckStatus.FAILED, CheckSeverity.LOW),))
    )

    assert out.getvalue() == "- [failed] \x1b[36mlow\x1b[0m x\n"
