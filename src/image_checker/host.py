"""
In-process host collaborator: provider and image-checker registries.

The host owns registrations; extensions receive ``Disposable`` handles and
push them onto ``ExtensionContext.subscriptions`` so deactivation releases
everything they registered.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

from image_checker.checks.models import ImageChecks, ImageInfo
from image_checker.checks.orchestrator import CheckProvider, CheckProviderError
from image_checker.utils.concurrency import CancellationToken
from image_checker.utils.disposable import Disposable

DEFAULT_PROVIDER_LABEL: Final[str] = "Image Checker"


@dataclass(frozen=True, slots=True)
class ProviderOptions:
    name: str
    id: str
    status: str = "unknown"
    images: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ImageCheckerProviderMetadata:
    label: str | None = None


@dataclass(frozen=True, slots=True, eq=False)
class RegisteredImageChecker:
    label: str
    provider: CheckProvider


class Provider(Disposable):
    """Host-side provider record. Disposing removes it from the registry."""

    __slots__ = ("options",)

    def __init__(self, options: ProviderOptions, release: Disposable) -> None:
        super().__init__(release.dispose)
        self.options = options

    @property
    def id(self) -> str:
        return self.options.id

    @property
    def name(self) -> str:
        return self.options.name


class ProviderRegistry:
    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}

    def create_provider(self, options: ProviderOptions) -> Provider:
        if options.id in self._providers:
            raise ValueError(f"provider {options.id!r} is already registered")
        provider = Provider(options, Disposable(lambda: self._providers.pop(options.id, None)))
        self._providers[options.id] = provider
        return provider

    def providers(self) -> tuple[Provider, ...]:
        return tuple(self._providers.values())


class ImageCheckerRegistry:
    """Registry of image-checker providers, addressed by label."""

    def __init__(self) -> None:
        self._registrations: list[RegisteredImageChecker] = []

    def register_image_checker_provider(
        self,
        provider: CheckProvider,
        metadata: ImageCheckerProviderMetadata | None = None,
    ) -> Disposable:
        label = metadata.label if metadata is not None and metadata.label else None
        registration = RegisteredImageChecker(
            label=label or DEFAULT_PROVIDER_LABEL,
            provider=provider,
        )
        self._registrations.append(registration)

        def release() -> None:
            self._registrations[:] = [
                item for item in self._registrations if item is not registration
            ]

        return Disposable(release)

    def providers(self) -> tuple[RegisteredImageChecker, ...]:
        return tuple(self._registrations)

    def get(self, label: str) -> RegisteredImageChecker:
        for registration in self._registrations:
            if registration.label == label:
                return registration
        known = ", ".join(repr(item.label) for item in self._registrations) or "none"
        raise KeyError(f"no image checker registered with label {label!r}; known: {known}")

    async def check(
        self,
        label: str,
        image: ImageInfo,
        token: CancellationToken | None = None,
    ) -> ImageChecks:
        registration = self.get(label)
        try:
            return await registration.provider.check(image, token)
        except CheckProviderError:
            raise
        except Exception as exc:
            raise CheckProviderError(f"provider {label!r} failed: {exc}") from exc


@dataclass(slots=True)
class Host:
    provider: ProviderRegistry = field(default_factory=ProviderRegistry)
    image_checker: ImageCheckerRegistry = field(default_factory=ImageCheckerRegistry)


@dataclass(slots=True)
class ExtensionContext:
    subscriptions: list[Disposable] = field(default_factory=list)

    def dispose(self) -> None:
        """Dispose subscriptions in reverse registration order."""

        while self.subscriptions:
            self.subscriptions.pop().dispose()


__all__ = [
    "DEFAULT_PROVIDER_LABEL",
    "ExtensionContext",
    "Host",
    "ImageCheckerProviderMetadata",
    "ImageCheckerRegistry",
    "Provider",
    "ProviderOptions",
    "ProviderRegistry",
    "RegisteredImageChecker",
]
