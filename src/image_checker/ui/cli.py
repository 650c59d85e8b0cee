"""Command-line interface router for image-checker."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Final

from image_checker.checks.models import ImageChecks, ImageInfo
from image_checker.checks.orchestrator import CheckProviderError
from image_checker.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from image_checker.extension import activate, deactivate
from image_checker.host import ExtensionContext, Host
from image_checker.observability import correlation_scope, setup_logging, shutdown_logging
from image_checker.ui.render import CLIRenderer, create_renderer
from image_checker.utils.concurrency import CancellationTokenSource

DEFAULT_IMAGE_ID: Final[str] = "sha256:0000000000000000"


class CLIError(RuntimeError):
    """A command failed; ``exit_code`` is what the process should return."""

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-checker",
        description=(
            "image-checker — mock image-check providers with cancellation.\n\n"
            "Common workflows:\n"
            "  image-checker providers                List registered providers\n"
            "  image-checker check --provider LABEL   Run one provider\n"
            "  image-checker config                   Show effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./image-checker.toml if present).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--log-to-stderr",
        action="store_true",
        default=False,
        help="Write JSON log lines to stderr.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show finding descriptions.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    providers_parser = subparsers.add_parser(
        "providers",
        parents=[common],
        help="List registered image-check providers",
    )
    providers_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    providers_parser.set_defaults(handler=_cmd_providers)

    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Run one image-check provider",
        description=(
            "Run a provider against an image and print its findings.\n\n"
            "Examples:\n"
            "  image-checker check\n"
            '  image-checker check --provider "Image Checker provider **"\n'
            "  image-checker check --cancel-after-ms 100 --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    check_parser.add_argument(
        "--provider",
        default=None,
        help="Provider label (default: first registered provider).",
    )
    check_parser.add_argument("--image", default=DEFAULT_IMAGE_ID, help="Image ID to check")
    check_parser.add_argument(
        "--cancel-after-ms",
        type=int,
        default=None,
        help="Request cancellation after this many milliseconds.",
    )
    check_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    check_parser.set_defaults(handler=_cmd_check)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Run one command and return its exit code; usage errors exit through argparse."""

    args = build_parser().parse_args(None if argv is None else list(argv))
    try:
        return int(args.handler(args))
    except CLIError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return exc.exit_code


def _cmd_providers(args: argparse.Namespace) -> int:
    config = _load(args)
    host = Host()
    context = ExtensionContext()
    with _cli_logging(config):
        activate(context, host, config)
        try:
            rows = [
                (
                    registration.label,
                    type(registration.provider).__name__,
                    str(getattr(registration.provider, "timeout_ms", "-")),
                )
                for registration in host.image_checker.providers()
            ]
        finally:
            context.dispose()
            deactivate()

    if args.json:
        _print_json(
            {
                "command": "providers",
                "providers": [
                    {"label": label, "kind": kind, "timeout_ms": timeout}
                    for label, kind, timeout in rows
                ],
            }
        )
        return 0

    renderer = _renderer(args)
    renderer.table(("LABEL", "KIND", "TIMEOUT_MS"), rows, title="Image checkers:")
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    cancel_after_ms = args.cancel_after_ms
    if cancel_after_ms is not None and cancel_after_ms < 0:
        raise CLIError("--cancel-after-ms must be >= 0", exit_code=2)

    config = _load(args)
    host = Host()
    context = ExtensionContext()
    image_id = _text_arg(args, "image")
    if image_id is None:
        raise CLIError("--image must be a non-empty string", exit_code=2)
    image = ImageInfo(id=image_id)

    with _cli_logging(config):
        activate(context, host, config)
        try:
            registrations = host.image_checker.providers()
            label = _text_arg(args, "provider")
            if label is None:
                if not registrations:
                    raise CLIError("no image-check providers are registered", exit_code=2)
                label = registrations[0].label
            try:
                host.image_checker.get(label)
            except KeyError as exc:
                raise CLIError(str(exc.args[0]), exit_code=2) from exc

            with correlation_scope(provider_label=label, image_id=image.id):
                try:
                    result = asyncio.run(_run_check(host, label, image, cancel_after_ms))
                except CheckProviderError as exc:
                    raise CLIError(f"check failed: {exc}", exit_code=1) from exc
        finally:
            context.dispose()
            deactivate()

    if args.json:
        _print_json({"command": "check", "provider": label, "image": image.id, **result.to_dict()})
        return 0

    renderer = _renderer(args)
    renderer.kv("Provider", label)
    renderer.kv("Image", image.id)
    renderer.findings(result)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load(args)
    redacted = effective_config(config)

    if args.json:
        _print_json({"command": "config", "config": redacted})
        return 0

    renderer = _renderer(args)
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


async def _run_check(
    host: Host,
    label: str,
    image: ImageInfo,
    cancel_after_ms: int | None,
) -> ImageChecks:
    source = CancellationTokenSource()
    timer = None
    if cancel_after_ms is not None:
        timer = asyncio.get_running_loop().call_later(cancel_after_ms / 1000.0, source.cancel)
    try:
        return await host.image_checker.check(label, image, source.token)
    finally:
        if timer is not None:
            timer.cancel()


@contextmanager
def _cli_logging(config: Mapping[str, Any]) -> Iterator[None]:
    """Own structured logging for one CLI command."""

    setup_logging(config["observability"], run_id=f"cli-{uuid.uuid4().hex[:12]}")
    try:
        yield
    finally:
        shutdown_logging()


def _print_json(payload: Mapping[str, object]) -> None:
    sys.stdout.write(
        json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False) + "\n"
    )


def _renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


def _load(args: argparse.Namespace) -> dict[str, Any]:
    """Load config for a command, mapping global flags onto config overrides."""

    overrides: dict[str, object] = {}
    if args.log_level:
        overrides["observability.log_level"] = args.log_level
    if args.log_to_stderr:
        overrides["observability.log_to_stderr"] = True
    try:
        return load_config(_text_arg(args, "config_path"), cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _text_arg(args: argparse.Namespace, name: str) -> str | None:
    value = getattr(args, name, None)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


__all__ = ["CLIError", "build_parser", "run_cli"]
