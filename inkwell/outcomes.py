"""
Inkwell Backend — Action Outcomes
===================================

What:  The closed set of failure variants a paid AI action can end in.
How:   Services return either their success value or a frozen `Failure`.
       Routes call `raise_for_failure()` to turn a Failure into the matching
       exception from `inkwell.exceptions`, which the global handlers render.

Variants:
    NOT_FOUND              note absent or owned by someone else
    INSUFFICIENT_CREDITS   ledger reservation refused ("payment required")
    UPSTREAM_UNAVAILABLE   completion service failed (status hint optional)
    RATE_LIMITED           completion service answered 429
    VALIDATION_FAILED      malformed input, rejected before side effects
    PERSISTENCE_DEGRADED   chat turns not stored; logged, never surfaced
"""

from dataclasses import dataclass
from enum import Enum
from typing import NoReturn, Optional

from inkwell.exceptions import (
    InsufficientCreditsError,
    LLMServiceError,
    NotFoundError,
    UpstreamRateLimitedError,
    ValidationError,
)


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    RATE_LIMITED = "rate_limited"
    VALIDATION_FAILED = "validation_failed"
    PERSISTENCE_DEGRADED = "persistence_degraded"


@dataclass(frozen=True)
class Failure:
    """
    A failed action.

    Attributes:
        kind:    Which variant this is.
        message: User-facing description.
        status:  Optional numeric hint (upstream HTTP status, required credits).
    """

    kind: FailureKind
    message: str
    status: Optional[int] = None

    @classmethod
    def not_found(cls, resource: str = "note") -> "Failure":
        return cls(FailureKind.NOT_FOUND, f"The requested {resource} was not found")

    @classmethod
    def insufficient_credits(cls, required: int) -> "Failure":
        return cls(
            FailureKind.INSUFFICIENT_CREDITS,
            "Insufficient credits for this operation.",
            status=required,
        )

    @classmethod
    def from_upstream(cls, error: LLMServiceError) -> "Failure":
        """Classify a gateway error by its upstream status."""
        if error.status_code == 429:
            return cls(FailureKind.RATE_LIMITED, error.message, status=429)
        return cls(FailureKind.UPSTREAM_UNAVAILABLE, error.message, status=error.status_code)


def raise_for_failure(failure: Failure) -> NoReturn:
    """Raise the application exception that presents `failure` over HTTP."""
    if failure.kind is FailureKind.NOT_FOUND:
        raise NotFoundError(resource="note")
    if failure.kind is FailureKind.INSUFFICIENT_CREDITS:
        raise InsufficientCreditsError(message=failure.message, required=failure.status)
    if failure.kind is FailureKind.RATE_LIMITED:
        raise UpstreamRateLimitedError()
    if failure.kind is FailureKind.VALIDATION_FAILED:
        raise ValidationError(message=failure.message)
    if failure.kind is FailureKind.UPSTREAM_UNAVAILABLE:
        raise LLMServiceError(
            message="AI request failed. Please try again later.",
            status_code=failure.status,
        )
    # PERSISTENCE_DEGRADED is never handed to callers
    raise ValueError(f"Failure kind {failure.kind.value!r} has no HTTP presentation")
