"""Check payloads and the timer/cancellation check orchestrator."""

from image_checker.checks.models import (
    CheckSeverity,
    CheckStatus,
    ImageCheck,
    ImageChecks,
    ImageInfo,
)
from image_checker.checks.orchestrator import (
    CANCEL_EVENT,
    DONE_EVENT,
    CheckOrchestrator,
    CheckProvider,
    CheckProviderError,
    FailingCheckProvider,
    settle_check,
)

__all__ = [
    "CANCEL_EVENT",
    "CheckOrchestrator",
    "CheckProvider",
    "CheckProviderError",
    "CheckSeverity",
    "CheckStatus",
    "DONE_EVENT",
    "FailingCheckProvider",
    "ImageCheck",
    "ImageChecks",
    "ImageInfo",
    "settle_check",
]
