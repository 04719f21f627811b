"""
Inkwell Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, dependencies and middleware; caught by global handlers.
When:  During request processing when recoverable errors occur.

Exception Hierarchy:
    InkwellError (base)
    ├── ValidationError            → 400 Bad Request (client can fix)
    ├── AuthenticationError        → 401 Unauthorized
    ├── InsufficientCreditsError   → 402 Payment Required
    ├── NotFoundError              → 404 Not Found
    ├── LLMServiceError            → 503 Service Unavailable (upstream failed)
    │   └── UpstreamRateLimitedError → 429 Too Many Requests (upstream throttled)
    ├── DatabaseError              → 500 Internal Server Error
    └── RateLimitExceededError     → 429 Too Many Requests (our own limiter)

The paid AI actions do not raise these directly; they return
`inkwell.outcomes.Failure` values which `raise_for_failure()` converts here.
"""

from typing import Any, Dict, Optional


class InkwellError(Exception):
    """
    Base exception for all Inkwell application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(InkwellError):
    """
    Raised when client input fails validation.

    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "A user with this email already exists",
            "details": {"field": "email"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(InkwellError):
    """
    Raised when credentials or bearer tokens are missing, invalid or expired.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Invalid or expired token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InsufficientCreditsError(InkwellError):
    """
    Raised when a ledger reservation cannot be made.

    What:    The account balance does not cover the cost of the paid action.
    HTTP:    402 Payment Required

    This is a user-facing outcome, not a system error: nothing was deducted
    and no AI call was made.
    """

    def __init__(
        self,
        message: str = "Insufficient credits for this operation.",
        required: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if required is not None:
            ctx["required"] = required
        super().__init__(message=message, context=ctx)
        self.required = required


class NotFoundError(InkwellError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found

    Resources owned by another account raise this too, with the same
    message, so existence is never revealed to non-owners.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class LLMServiceError(InkwellError):
    """
    Raised when the remote completion service call fails.

    What:    Non-2xx response, transport failure, timeout or missing API key.
    HTTP:    503 Service Unavailable

    Attributes:
        status_code: HTTP status returned by the upstream service, or None
                     when no response was received.
    """

    def __init__(
        self,
        message: str = "AI service is temporarily unavailable",
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["upstream_status"] = status_code
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.retry_after = retry_after


class UpstreamRateLimitedError(LLMServiceError):
    """
    Raised when the completion service answers 429.

    HTTP:    429 Too Many Requests (distinct error code from our own limiter)
    """

    def __init__(
        self,
        message: str = "The AI is busy. Please wait a few seconds and try again.",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=429,
            retry_after=retry_after,
            context=context,
        )


class DatabaseError(InkwellError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; the context is
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(InkwellError):
    """
    Raised when a client exceeds one of our sliding-window rate limits.

    HTTP:    429 Too Many Requests
    Response includes a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = message or (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
