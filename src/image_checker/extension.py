"""Extension lifecycle: register the configured image-check providers with a host."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from image_checker.checks.models import ImageCheck
from image_checker.checks.orchestrator import CheckOrchestrator, FailingCheckProvider
from image_checker.config.schema import default_config
from image_checker.host import (
    ExtensionContext,
    Host,
    ImageCheckerProviderMetadata,
    ProviderOptions,
)
from image_checker.utils.concurrency import Clock


def build_orchestrators(
    config: Mapping[str, Any],
    *,
    clock: Clock | None = None,
    logger: Any | None = None,
) -> tuple[CheckOrchestrator, ...]:
    """Create one orchestrator per ``[[providers]]`` entry, in config order."""

    orchestrators: list[CheckOrchestrator] = []
    for entry in config["providers"]:
        orchestrators.append(
            CheckOrchestrator(
                [ImageCheck.from_mapping(item) for item in entry["checks"]],
                entry["timeout_ms"],
                label=entry.get("label"),
                clock=clock,
                logger=logger,
            )
        )
    return tuple(orchestrators)


def activate(
    context: ExtensionContext,
    host: Host,
    config: Mapping[str, Any] | None = None,
    *,
    clock: Clock | None = None,
    logger: Any | None = None,
) -> None:
    """Register the extension provider, the timed check providers, and the failing one."""

    cfg = config if config is not None else default_config()
    log = logger if logger is not None else structlog.get_logger(__name__)

    extension = cfg["extension"]
    provider = host.provider.create_provider(
        ProviderOptions(
            name=extension["name"],
            id=extension["id"],
            status=extension.get("status", "unknown"),
            images={key: extension[key] for key in ("icon", "logo") if key in extension},
        )
    )
    context.subscriptions.append(provider)

    for orchestrator in build_orchestrators(cfg, clock=clock, logger=logger):
        context.subscriptions.append(
            host.image_checker.register_image_checker_provider(
                orchestrator,
                ImageCheckerProviderMetadata(label=orchestrator.label),
            )
        )

    failing = cfg["failing_provider"]
    if failing["enabled"]:
        context.subscriptions.append(
            host.image_checker.register_image_checker_provider(
                FailingCheckProvider(failing["message"]),
                ImageCheckerProviderMetadata(label=failing["label"]),
            )
        )

    log.info(
        "image_checker_extension_activated",
        extension_id=extension["id"],
        registered=len(host.image_checker.providers()),
    )


def deactivate(*, logger: Any | None = None) -> None:
    log = logger if logger is not None else structlog.get_logger(__name__)
    log.info("stopping image-checker extension")


__all__ = ["activate", "build_orchestrators", "deactivate"]
