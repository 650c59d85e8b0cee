"""
image-checker — unit tests for config schema

File: tests/unit/config/test_schema.py
Last updated: 2026-10-19

Purpose
- Validate the shipped config, built-in defaults, and structured validation issues.

What this test file should cover
- Shipped ``image-checker.toml`` validates and matches defaults.
- Unknown fields, embedded secrets, and duplicate labels are reported by path.
- Schema version migration guidance.
- Redaction leaves flags untouched.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from image_checker.config import (
    CONFIG_SCHEMA_VERSION,
    ConfigValidationError,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)

REPO_ROOT = Path(__file__).resolve().parents[3]


def _load_toml(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    assert isinstance(data, dict)
    return data


def _issue_map(config: dict[str, object]) -> dict[str, str]:
    result = validate_config(config)
    assert not result.is_valid
    return {issue.path: issue.message for issue in result.issues}


def test_shipped_toml_matches_defaults() -> None:
    config = _load_toml(REPO_ROOT / "image-checker.toml")

    result = validate_config(config)

    assert result.is_valid, result.issues
    assert result.config == assert_valid_config(default_config())


def test_default_config_is_valid() -> None:
    assert validate_config(default_config()).is_valid


def test_unknown_and_secret_fields_are_reported() -> None:
    config = merge_config(
        default_config(),
        {"extension": {"colour": "blue", "apiKey": "sk-123"}},
    )

    issues = _issue_map(config)

    assert issues["extension.colour"] == "unknown field"
    assert issues["extension.apiKey"] == "embedded secret values are forbidden"


def test_duplicate_provider_labels_are_rejected() -> None:
    config = merge_config(
        default_config(),
        {
            "providers": [
                {"label": "same", "timeout_ms": 1, "checks": []},
                {"label": "same", "timeout_ms": 2, "checks": []},
            ]
        },
    )

    assert "duplicate provider label" in _issue_map(config)["providers[1].label"]


def test_check_fields_are_validated() -> None:
    config = merge_config(
        default_config(),
        {
            "providers": [
                {
                    "timeout_ms": 10,
                    "checks": [
                        {"name": "x", "status": "failed", "severity": "urgent"},
                        {"status": "success", "markdown_description": 3},
                    ],
                }
            ]
        },
    )

    issues = _issue_map(config)

    assert "invalid value 'urgent'" in issues["providers[0].checks[0].severity"]
    assert issues["providers[0].checks[1].name"] == "missing required field"
    assert issues["providers[0].checks[1].markdown_description"] == "expected string, got int"


def test_markdown_is_not_stripped() -> None:
    config = merge_config(
        default_config(),
        {
            "providers": [
                {
                    "timeout_ms": 10,
                    "checks": [{"name": "x", "status": "failed", "markdown_description": "  a\n"}],
                }
            ]
        },
    )

    validated = assert_valid_config(config)

    assert validated["providers"][0]["checks"][0]["markdown_description"] == "  a\n"


@pytest.mark.parametrize("version", [0, CONFIG_SCHEMA_VERSION + 1])
def test_schema_version_mismatch_gives_guidance(version: int) -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": version}})

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    assert [issue.path for issue in excinfo.value.issues] == ["meta.schema_version"]


def test_migration_guidance_wording() -> None:
    assert "older" in migration_guidance(CONFIG_SCHEMA_VERSION - 1)
    assert "newer" in migration_guidance(CONFIG_SCHEMA_VERSION + 1)
    assert migration_guidance(CONFIG_SCHEMA_VERSION) == "schema version is current"


def test_non_mapping_root_is_rejected() -> None:
    result = validate_config(["not", "a", "table"])

    assert result.config is None
    assert result.issues[0].path == "<root>"


def test_redaction_masks_secret_strings_but_not_flags() -> None:
    redacted = redact_config(
        {"observability": {"redact_secrets": True}, "auth": {"client_secret": "abc"}}
    )

    assert redacted == {
        "auth": {"client_secret": "<redacted>"},
        "observability": {"redact_secrets": True},
    }


def test_merge_replaces_lists() -> None:
    merged = merge_config({"a": [1, 2], "b": {"c": 1}}, {"a": [3], "b": {"d": 2}})

    assert merged == {"a": [3], "b": {"c": 1, "d": 2}}
