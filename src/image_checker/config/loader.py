"""
image-checker — runtime config loader.

File: src/image_checker/config/loader.py
Last updated: 2026-10-19

Purpose
- Build the effective config from four layers, highest first: CLI overrides,
  ``IMAGE_CHECKER_*`` environment variables, ``image-checker.toml``, defaults.

Rules
- Only an explicitly named config file must exist; the implicit
  ``./image-checker.toml`` is optional.
- Environment variables bind to scalar leaves of tables only. The type of the
  leaf already in the config decides how the string is parsed.
- Relative path fields resolve against the directory holding the config file.
- Every layer is validated; the result is always a fully valid config.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from image_checker.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "image-checker.toml"
ENV_PREFIX: Final[str] = "IMAGE_CHECKER_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "n", "off"})

ConfigPath = tuple[str, ...]


class ConfigLoadError(ValueError):
    """Raised when a config layer cannot be read or an override cannot be parsed."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config."""

    path = _config_file(config_path)
    from_file = _read_toml(path, required=config_path is not None)

    config = assert_valid_config(merge_config(default_config(), from_file))
    config = merge_config(config, _env_layer(config, os.environ if environ is None else environ))
    config = merge_config(config, _cli_layer(cli_overrides or {}))
    config = assert_valid_config(config)

    return assert_valid_config(normalize_paths(config, base_dir=path.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve every path field in ``config`` against ``base_dir``."""

    out = merge_config({}, config)
    for field in PATH_FIELDS:
        raw = _lookup(out, field)
        if isinstance(raw, str):
            _assign(out, field, _resolve_path(raw, base_dir))
    return out


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Canonical JSON of the redacted config; identical inputs give identical text."""

    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path, current in sorted(_table_leaves(config)):
        name = ENV_PREFIX + "_".join(part.upper() for part in path)
        raw = environ.get(name)
        if raw is None:
            continue
        parse = _PARSERS.get(type(current))
        if parse is None:
            continue
        try:
            value = parse(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)}: {exc}") from exc
        _assign(layer, path, value)
    return layer


def _table_leaves(
    payload: Mapping[str, object], prefix: ConfigPath = ()
) -> Iterator[tuple[ConfigPath, object]]:
    for key, value in payload.items():
        if isinstance(value, Mapping):
            yield from _table_leaves(value, (*prefix, key))
        elif not isinstance(value, list):
            yield (*prefix, key), value


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("expected a boolean (true/false, yes/no, on/off, 1/0)")


def _parse_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"expected an integer, got {raw!r}") from None


_PARSERS: Final[dict[type, Callable[[str], object]]] = {
    bool: _parse_bool,
    int: _parse_int,
    str: str,
}


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _assign(layer, path, overrides[key])
    return layer


def _assign(target: dict[str, Any], path: ConfigPath, value: object) -> None:
    node = target
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


def _lookup(payload: Mapping[str, object], path: ConfigPath) -> object | None:
    node: object = payload
    for part in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _resolve_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "normalize_paths",
]
