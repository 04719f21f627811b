"""
Inkwell Backend — Middleware Package
======================================

Middleware chain (outermost first):
    Request → [Request ID] → [Logging] → [Rate Limit] → [GZip] → [CORS] → Route

Request ID runs first so the access log line and any 429 body from the
global limiter carry the correlation id. Route-level limits (auth, per
account, AI) are FastAPI dependencies in `rate_limit`.
"""
