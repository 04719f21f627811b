"""
Inkwell Backend — Rate Limiting
=================================

What:  In-memory sliding-window limiters: a global per-IP middleware plus
       route dependencies for auth (per IP), authenticated API calls (per
       account) and paid AI actions (per account).
How:   Each limiter keeps, per key, the timestamps of requests inside its
       window. A request is allowed while fewer than `limit` timestamps
       remain; otherwise 429 with Retry-After.
Who:   `build_limiters()` is called by create_app and stored on
       `app.state.limiters`, so each application instance starts empty.

Limits (defaults, see config):
    global         200 / 15 min   per IP
    auth            10 / 15 min   per IP       (register, login)
    authenticated  150 / 15 min   per account  (every authenticated route)
    ai              50 / 60 min   per account  (tags, chat)

Single-process only: counters are not shared across workers.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional
from uuid import UUID

from fastapi import Depends, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from inkwell.config import settings
from inkwell.exceptions import RateLimitExceededError
from inkwell.middleware.request_id import request_id_var
from inkwell.security import get_current_account_id

logger = logging.getLogger(__name__)

# Idle keys are swept after this many recorded hits
CLEANUP_EVERY = 1000


class SlidingWindowLimiter:
    """
    Sliding-window counter keyed by an arbitrary string (IP or account id).

    Args:
        name:   Label used in logs.
        limit:  Max requests per window.
        window: Window length in seconds.
        clock:  Time source, replaceable in tests.
    """

    def __init__(
        self,
        name: str,
        limit: int,
        window: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: Dict[str, List[float]] = defaultdict(list)
        self._recorded = 0

    def hit(self, key: str) -> Optional[int]:
        """
        Record a request for `key`.

        Returns:
            None when allowed, otherwise seconds until the oldest request
            in the window expires (the request is not recorded).
        """
        now = self._clock()
        window_start = now - self.window
        hits = [ts for ts in self._hits[key] if ts > window_start]
        self._hits[key] = hits

        if len(hits) >= self.limit:
            retry_after = int(hits[0] + self.window - now) + 1
            logger.warning(
                "Rate limit '%s' exceeded for %s: %d requests in %ds window",
                self.name, key, len(hits), self.window,
            )
            return retry_after

        hits.append(now)
        self._recorded += 1
        if self._recorded % CLEANUP_EVERY == 0:
            self._cleanup(window_start)
        return None

    def reset(self) -> None:
        self._hits.clear()
        self._recorded = 0

    def _cleanup(self, window_start: float) -> None:
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in idle:
            del self._hits[key]
        if idle:
            logger.debug("Limiter '%s' dropped %d idle keys", self.name, len(idle))


def build_limiters() -> Dict[str, SlidingWindowLimiter]:
    """Fresh limiters configured from settings."""
    return {
        "global": SlidingWindowLimiter(
            "global", settings.rate_limit_requests, settings.rate_limit_window
        ),
        "auth": SlidingWindowLimiter(
            "auth", settings.auth_rate_limit_requests, settings.auth_rate_limit_window
        ),
        "api": SlidingWindowLimiter(
            "api", settings.api_rate_limit_requests, settings.api_rate_limit_window
        ),
        "ai": SlidingWindowLimiter(
            "ai", settings.ai_rate_limit_requests, settings.ai_rate_limit_window
        ),
    }


def client_ip(request: Request) -> str:
    # Behind a proxy this is the proxy address
    return request.client.host if request.client else "unknown"


def _enforce(request: Request, name: str, key: str) -> None:
    limiter: SlidingWindowLimiter = request.app.state.limiters[name]
    retry_after = limiter.hit(key)
    if retry_after is not None:
        raise RateLimitExceededError(retry_after=retry_after, context={"limiter": name})


# ── Global middleware ─────────────────────────────────────────────────────


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP global limit, applied before any routing."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        limiter: SlidingWindowLimiter = request.app.state.limiters["global"]
        retry_after = limiter.hit(client_ip(request))
        if retry_after is not None:
            # Raised exceptions bypass the app's handlers at this layer
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                    "request_id": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)


# ── Route dependencies ────────────────────────────────────────────────────


async def limit_auth(request: Request) -> None:
    """Per-IP limit for register/login."""
    _enforce(request, "auth", client_ip(request))


async def limit_account(
    request: Request,
    account_id: UUID = Depends(get_current_account_id),
) -> UUID:
    """Authenticate, then apply the per-account API limit. Returns the account id."""
    _enforce(request, "api", str(account_id))
    return account_id


async def limit_ai(
    request: Request,
    account_id: UUID = Depends(limit_account),
) -> UUID:
    """Per-account limit for paid AI actions, on top of the API limit."""
    _enforce(request, "ai", str(account_id))
    return account_id
