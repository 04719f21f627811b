"""
Inkwell Backend — Application Package
=======================================

Multi-tenant note backend with paid AI actions.

    ┌─────────────────────────────────────┐
    │   Routes + Middleware (HTTP layer)  │  ← auth, rate limits, error mapping
    ├─────────────────────────────────────┤
    │   Services                          │  ← notes, ledger, AI orchestration
    ├─────────────────────────────────────┤
    │   Models & Schemas                  │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database                          │  ← async sessions, transactions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
