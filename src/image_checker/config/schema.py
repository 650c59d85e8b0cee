"""
image-checker — configuration schema and validation.

File: src/image_checker/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

What is included in this file
- Defaults reproducing the sample extension: two timed providers and one
  failing provider.
- Validation for required fields, types, closed enums, and numeric bounds.
- Deterministic deep-merge and redaction helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from image_checker.checks.models import CheckSeverity, CheckStatus

CONFIG_SCHEMA_VERSION: Final[int] = 1

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SECRET_KEY = re.compile(
    r"(?:^|_)(?:secrets?|tokens?|passw(?:or)?d|api_?key|private_key|credentials?)(?:_|$)"
)
_REDACTED: Final[str] = "<redacted>"

_STATUS_VALUES: Final[tuple[str, ...]] = tuple(item.value for item in CheckStatus)
_SEVERITY_VALUES: Final[tuple[str, ...]] = tuple(item.value for item in CheckSeverity)
_PROVIDER_STATUS_VALUES: Final[tuple[str, ...]] = (
    "installed",
    "configured",
    "ready",
    "started",
    "stopped",
    "exited",
    "error",
    "unknown",
)

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)

_USER_DIRECTIVE_DESCRIPTION: Final[str] = (
    "USER directive set to root at line -1 could cause an unexpected behavior. "
    "In OpenShift, containers are run using arbitrarily assigned user ID"
)


class MetaConfig(TypedDict):
    schema_version: int


class ExtensionConfig(TypedDict):
    name: str
    id: str
    status: str
    icon: str
    logo: str


class ObservabilityConfig(TypedDict):
    log_level: str
    log_dir: str
    log_to_stderr: bool
    log_to_file: bool
    redact_secrets: bool


class CheckConfig(TypedDict):
    name: str
    status: str
    severity: NotRequired[str]
    markdown_description: NotRequired[str]


class ProviderConfig(TypedDict):
    label: NotRequired[str]
    timeout_ms: int
    checks: list[CheckConfig]


class FailingProviderConfig(TypedDict):
    enabled: bool
    label: str
    message: str


class ImageCheckerConfig(TypedDict):
    meta: MetaConfig
    extension: ExtensionConfig
    observability: ObservabilityConfig
    providers: list[ProviderConfig]
    failing_provider: FailingProviderConfig


DEFAULT_CONFIG: Final[ImageCheckerConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "extension": {
        "name": "Image Checker Extension",
        "id": "image-checker",
        "status": "unknown",
        "icon": "./icon.png",
        "logo": "./icon.png",
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs",
        "log_to_stderr": False,
        "log_to_file": False,
        "redact_secrets": True,
    },
    "providers": [
        {
            "timeout_ms": 2000,
            "checks": [
                {
                    "name": "check 1",
                    "status": "failed",
                    "severity": "medium",
                    "markdown_description": "a warning",
                },
                {
                    "name": "check 2",
                    "status": "failed",
                    "severity": "high",
                    "markdown_description": "an error",
                },
            ],
        },
        {
            "label": "Image Checker provider **",
            "timeout_ms": 5000,
            "checks": [
                {
                    "name": "USER directive",
                    "status": "failed",
                    "severity": "critical",
                    "markdown_description": _USER_DIRECTIVE_DESCRIPTION,
                },
                {
                    "name": "USER directive",
                    "status": "failed",
                    "severity": "high",
                    "markdown_description": _USER_DIRECTIVE_DESCRIPTION,
                },
                {
                    "name": "Base image",
                    "status": "failed",
                    "severity": "medium",
                    "markdown_description": (
                        "unable to analyze the base image "
                        "registry-proxy.engineering.redhat.com/rh-osbs/ubi9@sha256:"
                        "6b95efc134c2af3d45472c0a2f88e6085433df058cc210abb2bb061ac4d74359"
                    ),
                },
                {
                    "name": "result check 2",
                    "status": "failed",
                    "severity": "low",
                    "markdown_description": "an error\n\nbla bla",
                },
                {"name": "check 3", "status": "success"},
            ],
        },
    ],
    "failing_provider": {
        "enabled": True,
        "label": "A Failing Provider",
        "message": "an internal error occured",
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {item.path}: {item.message}" for item in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)


_Parse = Callable[[object, str, _IssueCollector], object | None]


@dataclass(frozen=True, slots=True)
class _Section:
    """Fields a table accepts, each with its parser, and which of them must be present."""

    fields: Mapping[str, _Parse]
    required: frozenset[str]


def default_config() -> ImageCheckerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade image-checker.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade the image-checker runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``. Lists are replaced, not merged."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    normalized = _table(_ROOT)(config, "", issues)
    found = issues.items()
    if found or not isinstance(normalized, dict):
        return ConfigValidationResult(config=None, issues=found)
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a copy with secret-looking string values masked, for logs and CLI output."""

    if not isinstance(config, Mapping):
        return {}
    return _redacted(config)


def is_secret_key(key: object) -> bool:
    if not isinstance(key, str):
        return False
    spaced = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _SECRET_KEY.search(spaced.lower().replace("-", "_")) is not None


def _redacted(value: object) -> Any:
    if isinstance(value, Mapping):
        return {
            key: (
                _REDACTED
                if is_secret_key(key) and not isinstance(value[key], bool)
                else _redacted(value[key])
            )
            for key in sorted(value, key=str)
        }
    if isinstance(value, (list, tuple)):
        return [_redacted(item) for item in value]
    return value


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _parse_section(
    section: _Section, payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    for key in sorted(payload):
        if key not in section.fields:
            if is_secret_key(key):
                issues.add(_join(path, key), "embedded secret values are forbidden")
            else:
                issues.add(_join(path, key), "unknown field")
    for key in sorted(section.required.difference(payload)):
        issues.add(_join(path, key), "missing required field")

    out: dict[str, Any] = {}
    for key, parse in section.fields.items():
        if key not in payload:
            continue
        parsed = parse(payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _table(section: _Section) -> _Parse:
    def parse(value: object, path: str, issues: _IssueCollector) -> dict[str, Any] | None:
        where = path or "<root>"
        if not isinstance(value, Mapping):
            issues.add(where, f"expected object, got {type(value).__name__}")
            return None
        bad_keys = [key for key in value if not isinstance(key, str)]
        for key in bad_keys:
            issues.add(where, f"object key must be string, got {type(key).__name__}")
        payload = {key: item for key, item in value.items() if isinstance(key, str)}
        return _parse_section(section, payload, path, issues)

    return parse


def _array_of(item: _Parse) -> _Parse:
    def parse(value: object, path: str, issues: _IssueCollector) -> list[Any]:
        if not isinstance(value, list):
            issues.add(path, f"expected array, got {type(value).__name__}")
            return []
        parsed = (item(entry, f"{path}[{index}]", issues) for index, entry in enumerate(value))
        return [entry for entry in parsed if entry is not None]

    return parse


def _text(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    stripped = value.strip()
    if not stripped:
        issues.add(path, "must not be empty")
        return None
    return stripped


def _markdown(value: object, path: str, issues: _IssueCollector) -> str | None:
    # Passed through verbatim, whitespace included.
    if isinstance(value, str):
        return value
    issues.add(path, f"expected string, got {type(value).__name__}")
    return None


def _flag(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _at_least(minimum: int) -> _Parse:
    def parse(value: object, path: str, issues: _IssueCollector) -> int | None:
        if isinstance(value, bool) or not isinstance(value, int):
            issues.add(path, f"expected integer, got {type(value).__name__}")
            return None
        if value < minimum:
            issues.add(path, f"must be >= {minimum}")
            return None
        return value

    return parse


def _one_of(allowed: Sequence[str]) -> _Parse:
    expected = ", ".join(sorted(allowed))

    def parse(value: object, path: str, issues: _IssueCollector) -> str | None:
        text = _text(value, path, issues)
        if text is None:
            return None
        if text not in allowed:
            issues.add(path, f"invalid value {text!r}; expected one of: {expected}")
            return None
        return text

    return parse


def _schema_version(value: object, path: str, issues: _IssueCollector) -> int | None:
    version = _at_least(1)(value, path, issues)
    if isinstance(version, int) and version != CONFIG_SCHEMA_VERSION:
        issues.add(path, migration_guidance(version))
    return version


def _log_dir(value: object, path: str, issues: _IssueCollector) -> str | None:
    text = _text(value, path, issues)
    if text is not None and "\x00" in text:
        issues.add(path, "must not contain NUL bytes")
        return None
    return text


def _providers(value: object, path: str, issues: _IssueCollector) -> list[Any]:
    parsed: Any = _array_of(_table(_PROVIDER))(value, path, issues)
    seen: set[str] = set()
    raw = value if isinstance(value, list) else []
    for index, entry in enumerate(raw):
        label = entry.get("label") if isinstance(entry, Mapping) else None
        if not isinstance(label, str) or not label.strip():
            continue
        label = label.strip()
        if label in seen:
            issues.add(f"{path}[{index}].label", f"duplicate provider label {label!r}")
        seen.add(label)
    return parsed


def _section(fields: Mapping[str, _Parse], *, required: Sequence[str] | None = None) -> _Section:
    return _Section(fields=fields, required=frozenset(fields if required is None else required))


_CHECK = _section(
    {
        "name": _text,
        "status": _one_of(_STATUS_VALUES),
        "severity": _one_of(_SEVERITY_VALUES),
        "markdown_description": _markdown,
    },
    required=("name", "status"),
)
_PROVIDER = _section(
    {"label": _text, "timeout_ms": _at_least(0), "checks": _array_of(_table(_CHECK))},
    required=("timeout_ms", "checks"),
)
_ROOT = _section(
    {
        "meta": _table(_section({"schema_version": _schema_version})),
        "extension": _table(
            _section(
                {
                    "name": _text,
                    "id": _text,
                    "status": _one_of(_PROVIDER_STATUS_VALUES),
                    "icon": _text,
                    "logo": _text,
                },
                required=("name", "id"),
            )
        ),
        "observability": _table(
            _section(
                {
                    "log_level": _one_of(("DEBUG", "INFO", "WARNING", "ERROR")),
                    "log_dir": _log_dir,
                    "log_to_stderr": _flag,
                    "log_to_file": _flag,
                    "redact_secrets": _flag,
                }
            )
        ),
        "providers": _providers,
        "failing_provider": _table(
            _section({"enabled": _flag, "label": _text, "message": _text})
        ),
    }
)


__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "CheckConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "ImageCheckerConfig",
    "PATH_FIELDS",
    "ProviderConfig",
    "assert_valid_config",
    "default_config",
    "is_secret_key",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
