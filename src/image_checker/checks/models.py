"""Check payload types passed between providers and the host."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum


class CheckStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CheckSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class ImageCheck:
    """One finding reported by a provider. Opaque to the orchestrator."""

    name: str
    status: CheckStatus
    severity: CheckSeverity | None = None
    markdown_description: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ImageCheck:
        severity = payload.get("severity")
        description = payload.get("markdown_description")
        return cls(
            name=str(payload["name"]),
            status=CheckStatus(str(payload["status"])),
            severity=CheckSeverity(str(severity)) if severity is not None else None,
            markdown_description=str(description) if description is not None else None,
        )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"name": self.name, "status": self.status.value}
        if self.severity is not None:
            payload["severity"] = self.severity.value
        if self.markdown_description is not None:
            payload["markdown_description"] = self.markdown_description
        return payload


@dataclass(frozen=True, slots=True)
class ImageChecks:
    """Result of a single check call."""

    checks: tuple[ImageCheck, ...] = ()

    @classmethod
    def of(cls, checks: Sequence[ImageCheck]) -> ImageChecks:
        return cls(checks=tuple(checks))

    @classmethod
    def empty(cls) -> ImageChecks:
        return cls()

    def to_dict(self) -> dict[str, object]:
        return {"checks": [item.to_dict() for item in self.checks]}


@dataclass(frozen=True, slots=True)
class ImageInfo:
    """Image handed to a provider by the host."""

    id: str
    name: str | None = None
    engine_id: str | None = None


__all__ = [
    "CheckSeverity",
    "CheckStatus",
    "ImageCheck",
    "ImageChecks",
    "ImageInfo",
]
