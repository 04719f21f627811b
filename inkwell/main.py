"""
Inkwell Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance
       with its own rate-limiter state.
Who:   uvicorn (`uvicorn inkwell.main:app`) and the endpoint tests.

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                        FastAPI App                        │
    │                                                           │
    │  Middleware: RequestID → Logging → RateLimit → GZip → CORS│
    │                                                           │
    │  Routes:  /api/auth/*   /api/notes*   /api/credits*       │
    │           /api/notes/{id}/tags|chat   /health             │
    │                                                           │
    │  Exception handlers: InkwellError family → JSON errors    │
    └───────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, report configuration problems, log ready.
    Shutdown: close the completion HTTP client, dispose the database engine.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from inkwell import __version__
from inkwell.config import settings
from inkwell.database import dispose_engine
from inkwell.exceptions import (
    AuthenticationError,
    DatabaseError,
    InkwellError,
    InsufficientCreditsError,
    LLMServiceError,
    NotFoundError,
    RateLimitExceededError,
    UpstreamRateLimitedError,
    ValidationError,
)
from inkwell.middleware.logging import RequestLoggingMiddleware
from inkwell.middleware.rate_limit import RateLimitMiddleware, build_limiters
from inkwell.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from inkwell.routes import ai, auth, credits, health, notes
from inkwell.services.completion_service import completion_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s

    The request id comes from RequestIDLogFilter on the stdout handler, so
    every module logger gets it without passing it around.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Third-party libraries log every operation at INFO/DEBUG
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Inkwell Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks and non-AI routes still work
        logger.error("Configuration error: %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Inkwell Backend shutting down...")
    await completion_service.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error(
    request: Request, status: int, code: str, message: str, details=None, headers=None
) -> JSONResponse:
    # The Exception handler runs outside RequestIDMiddleware, after the
    # ContextVar is reset; request.state still holds the id there.
    request_id = request_id_var.get("") or getattr(request.state, "request_id", None)
    content = {
        "error": code,
        "message": message,
        "request_id": request_id,
    }
    if details:
        content["details"] = details
    headers = dict(headers or {})
    if request_id:
        headers.setdefault("X-Request-ID", request_id)
    return JSONResponse(status_code=status, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to HTTP responses.

    Handler hierarchy:
        ValidationError, RequestValidationError → 400 validation_error
        AuthenticationError                     → 401 unauthorized
        InsufficientCreditsError                → 402 insufficient_credits
        NotFoundError                           → 404 not_found
        RateLimitExceededError                  → 429 rate_limit_exceeded
        UpstreamRateLimitedError                → 429 upstream_rate_limited
        LLMServiceError                         → 503 llm_service_error
        DatabaseError, InkwellError             → 500 server_error
        Exception                               → 500 internal_server_error

    Internal details (SQL, upstream bodies, stack traces) are logged, never
    returned.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        logger.info("Request validation failed: %s", errors)
        return _error(request, 400, "validation_error", "Invalid request", details={"errors": errors})

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s", exc.message)
        return _error(request, 400, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error(request, 401, "unauthorized", exc.message, headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(InsufficientCreditsError)
    async def handle_insufficient_credits(request: Request, exc: InsufficientCreditsError):
        return _error(request, 402, "insufficient_credits", exc.message, details=exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(request, 404, "not_found", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error(
            request, 429, "rate_limit_exceeded", exc.message,
            details={"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(UpstreamRateLimitedError)
    async def handle_upstream_rate_limited(request: Request, exc: UpstreamRateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error(request, 429, "upstream_rate_limited", exc.message, headers=headers)

    @app.exception_handler(LLMServiceError)
    async def handle_llm_error(request: Request, exc: LLMServiceError):
        logger.error("LLM service error: %s | Context: %s", exc.message, exc.context)
        return _error(request, 503, "llm_service_error", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("Database error: %s | Context: %s", exc.message, exc.context)
        return _error(request, 500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(InkwellError)
    async def handle_inkwell_error(request: Request, exc: InkwellError):
        logger.error("Unhandled application error: %s | Context: %s", exc.message, exc.context)
        return _error(request, 500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return _error(
            request, 500, "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Each call gets fresh rate-limiter state on `app.state.limiters`.
    """
    app = FastAPI(
        title="Inkwell API",
        description=(
            "Multi-tenant notes with paid AI actions: tag extraction and "
            "note-grounded chat, metered by a per-account credit ledger."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.limiters = build_limiters()

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → RateLimit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(notes.router)
    app.include_router(ai.router)
    app.include_router(credits.router)
    app.include_router(health.router)

    return app


app = create_app()
