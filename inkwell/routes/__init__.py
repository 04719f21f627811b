"""
Inkwell Backend — API Routes Package
======================================

Route Inventory:
    - auth.py:     POST /api/auth/register, POST /api/auth/login, GET /api/auth/me
    - notes.py:    POST/GET /api/notes, GET/PATCH/DELETE /api/notes/{id}
    - ai.py:       POST /api/notes/{id}/tags, POST|GET /api/notes/{id}/chat
    - credits.py:  GET /api/credits, GET /api/credits/transactions
    - health.py:   GET /health

Routes stay thin: parse the request, call a service, shape the response.
"""
