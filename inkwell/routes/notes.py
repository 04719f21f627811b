"""
Inkwell Backend — Notes Route Handlers
========================================

What:  Owner-scoped CRUD under /api/notes.
How:   Authenticates via `limit_account` (bearer token + per-account limit),
       delegates to NoteService, returns JSON.
Who:   Called by the frontend note list and editor.

A note owned by another account is reported as 404, never 403.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from inkwell.database import get_db_session
from inkwell.middleware.rate_limit import limit_account
from inkwell.schemas.note import (
    ErrorResponse,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)
from inkwell.services.note_service import note_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])

NOT_FOUND = {404: {"description": "Note not found", "model": ErrorResponse}}


@router.post(
    "/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Invalid note", "model": ErrorResponse}},
    summary="Create a note",
)
async def create_note(
    body: NoteCreate,
    account_id: UUID = Depends(limit_account),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.create_note(db, account_id, body)


@router.get(
    "/notes",
    response_model=NoteListResponse,
    summary="List my notes, newest first",
    description=(
        "Cursor-based pagination: pass `next_cursor` from the previous page as "
        "`cursor`. The total count is also returned in the X-Total-Count header."
    ),
)
async def list_notes(
    response: Response,
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    cursor: Optional[str] = Query(
        default=None,
        description="`next_cursor` from the previous page (created_at|id of its last item)",
    ),
    account_id: UUID = Depends(limit_account),
    db: AsyncSession = Depends(get_db_session),
) -> NoteListResponse:
    """
    Example client usage:
        Page 1: GET /api/notes?limit=20
        Page 2: GET /api/notes?limit=20&cursor=<next_cursor, URL-encoded>
    """
    result = await note_service.list_notes(db, account_id, limit=limit, cursor=cursor)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses=NOT_FOUND,
    summary="Get a single note",
)
async def get_note(
    note_id: UUID,
    response: Response,
    account_id: UUID = Depends(limit_account),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    result = await note_service.get_note(db, account_id, note_id)
    # Notes are editable and user-specific
    response.headers["Cache-Control"] = "private, no-cache"
    return result


@router.patch(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses=NOT_FOUND,
    summary="Update a note (at least one field)",
)
async def update_note(
    note_id: UUID,
    body: NoteUpdate,
    account_id: UUID = Depends(limit_account),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.update_note(db, account_id, note_id, body)


@router.delete(
    "/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
    summary="Delete a note and its chat history",
)
async def delete_note(
    note_id: UUID,
    account_id: UUID = Depends(limit_account),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await note_service.delete_note(db, account_id, note_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
