"""
Inkwell Backend — Note AI Service (Paid Action Orchestrator)
==============================================================

What:  Tag extraction and note-grounded chat, each paid from the caller's
       credit balance.
How:   Composes CreditLedger and an LLMService. Returns the success response
       or a `Failure`; routes convert failures with `raise_for_failure`.
Who:   Called by the AI route handlers.

Orchestration Flow (both actions):
    ┌───────────┐    ┌─────────────┐    ┌──────────────┐    ┌─────────────┐
    │ Ownership │───▶│   Reserve   │───▶│  Completion  │───▶│   Persist   │
    │  (note)   │    │  (ledger)   │    │  (gateway)   │    │ (chat only) │
    └───────────┘    └─────────────┘    └──────────────┘    └─────────────┘

    Missing/foreign note → NOT_FOUND, nothing charged.
    Reservation refused  → INSUFFICIENT_CREDITS, no AI call made.
    Gateway failure      → RATE_LIMITED / UPSTREAM_UNAVAILABLE. Credits stay
                           spent unless REFUND_ON_AI_FAILURE is enabled.
    Persistence failure  → logged as persistence_degraded; the answer is
                           still returned.

This service never uses the request session: each step opens its own
scoped transaction, so no write lock is held across the remote call.
"""

import logging
from typing import Dict, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from inkwell.config import settings
from inkwell.database import transaction
from inkwell.exceptions import DatabaseError, LLMServiceError
from inkwell.models.note import ChatTurn
from inkwell.outcomes import Failure, FailureKind
from inkwell.schemas.note import (
    ChatHistoryResponse,
    ChatResponse,
    ChatTurnResponse,
    TagResponse,
)
from inkwell.services.completion_service import completion_service
from inkwell.services.ledger_service import CreditLedger, credit_ledger
from inkwell.services.llm_base import LLMService
from inkwell.services.note_service import find_owned_note

logger = logging.getLogger(__name__)

TAG_SERVICE = "AI_TAG"
CHAT_SERVICE = "AI_CHAT"


def build_chat_context(turns: Sequence) -> List[Dict[str, str]]:
    """
    Collapse stored turns (chronological) into a strictly alternating history.

    Of each run of same-role turns only the first is kept; a trailing turn
    that is not from the assistant is dropped so the new question follows an
    assistant reply.

    Roles [user, user, assistant, user] become [user, assistant].
    """
    history: List[Dict[str, str]] = []
    last_role = "system"
    for turn in turns:
        if turn.role == last_role:
            continue
        history.append({"role": turn.role, "content": turn.content})
        last_role = turn.role

    if history and history[-1]["role"] != "assistant":
        history.pop()
    return history


class NoteAIService:

    def __init__(
        self,
        ledger: CreditLedger = credit_ledger,
        gateway: LLMService = completion_service,
        session_factory: Optional[async_sessionmaker] = None,
    ):
        """
        Args:
            ledger:          Credit ledger to reserve from.
            gateway:         Completion client (a fake in tests).
            session_factory: Override the default session factory (tests).
        """
        self.ledger = ledger
        self.gateway = gateway
        self._session_factory = session_factory

    # ── Paid actions ──────────────────────────────────────────────────────

    async def tag_note(self, account_id: UUID, note_id: UUID) -> Union[TagResponse, Failure]:
        """Extract keywords from the note (TAG_COST credits, service AI_TAG)."""
        async with transaction(self._session_factory) as session:
            note = await find_owned_note(session, account_id, note_id)
            content = note.content if note is not None else None
        if content is None:
            return Failure.not_found()

        reservation = await self.ledger.deduct(account_id, settings.tag_cost, TAG_SERVICE)
        if isinstance(reservation, Failure):
            return reservation

        try:
            tags = await self.gateway.extract_tags(content)
        except LLMServiceError as e:
            return await self._upstream_failed(e, account_id, settings.tag_cost, TAG_SERVICE)

        logger.info("Tagged note %s: %d tags", note_id, len(tags))
        return TagResponse(tags=tags)

    async def chat_with_note(
        self,
        account_id: UUID,
        note_id: UUID,
        message: str,
    ) -> Union[ChatResponse, Failure]:
        """Answer `message` from the note's content (CHAT_COST credits, service AI_CHAT)."""
        message = message.strip()
        if not message:
            return Failure(FailureKind.VALIDATION_FAILED, "Message must not be empty")

        async with transaction(self._session_factory) as session:
            note = await find_owned_note(session, account_id, note_id)
            if note is None:
                return Failure.not_found()
            content = note.content
            result = await session.execute(
                select(ChatTurn)
                .where(ChatTurn.note_id == note_id)
                .order_by(ChatTurn.created_at.desc(), ChatTurn.id.desc())
                .limit(settings.chat_history_window)
            )
            recent = list(result.scalars().all())

        history = build_chat_context(reversed(recent))

        reservation = await self.ledger.deduct(account_id, settings.chat_cost, CHAT_SERVICE)
        if isinstance(reservation, Failure):
            return reservation

        try:
            answer = await self.gateway.answer(content, message, history)
        except LLMServiceError as e:
            return await self._upstream_failed(e, account_id, settings.chat_cost, CHAT_SERVICE)

        await self._persist_turns(note_id, message, answer)
        return ChatResponse(response=answer)

    # ── Free reads ────────────────────────────────────────────────────────

    async def get_chat_history(
        self,
        account_id: UUID,
        note_id: UUID,
    ) -> Union[ChatHistoryResponse, Failure]:
        """All stored turns for an owned note, oldest first."""
        async with transaction(self._session_factory) as session:
            note = await find_owned_note(session, account_id, note_id)
            if note is None:
                return Failure.not_found()
            result = await session.execute(
                select(ChatTurn)
                .where(ChatTurn.note_id == note_id)
                .order_by(ChatTurn.created_at.asc(), ChatTurn.id.asc())
            )
            turns = list(result.scalars().all())

        return ChatHistoryResponse(
            messages=[ChatTurnResponse.model_validate(turn) for turn in turns]
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _upstream_failed(
        self,
        error: LLMServiceError,
        account_id: UUID,
        amount: int,
        service: str,
    ) -> Failure:
        failure = Failure.from_upstream(error)
        logger.warning(
            "%s failed for account %s after charging %d credits: %s",
            service, account_id, amount, error.message,
        )
        if settings.refund_on_ai_failure:
            await self.ledger.refund(account_id, amount, service)
        return failure

    async def _persist_turns(self, note_id: UUID, question: str, answer: str) -> None:
        """Store the user turn, then the assistant turn, as separate transactions."""
        try:
            async with transaction(self._session_factory) as session:
                session.add(ChatTurn(note_id=note_id, role="user", content=question))
            async with transaction(self._session_factory) as session:
                session.add(ChatTurn(note_id=note_id, role="assistant", content=answer))
        except (SQLAlchemyError, DatabaseError) as e:
            logger.error(
                "%s: could not store chat turns for note %s: %s",
                FailureKind.PERSISTENCE_DEGRADED.value, note_id, str(e),
            )


# ── Singleton Instance ────────────────────────────────────────────────────
note_ai_service = NoteAIService()


def get_note_ai_service() -> NoteAIService:
    """FastAPI dependency; overridden in tests to inject a fake gateway."""
    return note_ai_service
