"""
Inkwell Backend — AI Route Handlers
=====================================

What:  Paid AI actions on a note (tags, chat) and the free chat history read.
How:   Thin wrappers over NoteAIService; a returned Failure is raised through
       `raise_for_failure` and rendered by the global handlers.
Who:   Called by the note editor's AI panel.

These handlers take no request session: the service opens its own short
transactions around the ledger and the chat turn writes.
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from inkwell.middleware.rate_limit import limit_account, limit_ai
from inkwell.outcomes import Failure, raise_for_failure
from inkwell.schemas.note import (
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    TagResponse,
)
from inkwell.services.note_ai_service import NoteAIService, get_note_ai_service

router = APIRouter(prefix="/api/notes", tags=["AI"])

PAID_ERRORS = {
    402: {"description": "Insufficient credits", "model": ErrorResponse},
    404: {"description": "Note not found", "model": ErrorResponse},
    429: {"description": "Rate limited (ours or upstream)", "model": ErrorResponse},
    503: {"description": "AI service failed", "model": ErrorResponse},
}


@router.post(
    "/{note_id}/tags",
    response_model=TagResponse,
    responses=PAID_ERRORS,
    summary="Extract tags from a note (1 credit)",
)
async def generate_tags(
    note_id: UUID,
    account_id: UUID = Depends(limit_ai),
    service: NoteAIService = Depends(get_note_ai_service),
) -> TagResponse:
    result = await service.tag_note(account_id, note_id)
    if isinstance(result, Failure):
        raise_for_failure(result)
    return result


@router.post(
    "/{note_id}/chat",
    response_model=ChatResponse,
    responses=PAID_ERRORS,
    summary="Ask a question about a note (2 credits)",
)
async def chat(
    note_id: UUID,
    body: ChatRequest,
    account_id: UUID = Depends(limit_ai),
    service: NoteAIService = Depends(get_note_ai_service),
) -> ChatResponse:
    result = await service.chat_with_note(account_id, note_id, body.message)
    if isinstance(result, Failure):
        raise_for_failure(result)
    return result


@router.get(
    "/{note_id}/chat",
    response_model=ChatHistoryResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Chat history for a note, oldest first",
)
async def chat_history(
    note_id: UUID,
    account_id: UUID = Depends(limit_account),
    service: NoteAIService = Depends(get_note_ai_service),
) -> ChatHistoryResponse:
    result = await service.get_chat_history(account_id, note_id)
    if isinstance(result, Failure):
        raise_for_failure(result)
    return result
