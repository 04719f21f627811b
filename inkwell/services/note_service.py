"""
Inkwell Backend — Note Service
================================

What:  Owner-scoped note CRUD.
How:   Every query filters on owner_id, so a note belonging to another
       account behaves exactly like a missing one (404).
Who:   Called by the note route handlers with the request session; the
       session commits in get_db_session.

Design Decision:
    NoteService is stateless; it receives the db session for each call.
    `find_owned_note` is shared with NoteAIService for its ownership check.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, delete, desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inkwell.exceptions import DatabaseError, NotFoundError
from inkwell.models.note import ChatTurn, Note
from inkwell.schemas.note import (
    NoteCreate,
    NoteListItem,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200
CURSOR_SEPARATOR = "|"


def encode_cursor(note: Note) -> str:
    return f"{note.created_at.isoformat()}{CURSOR_SEPARATOR}{note.id}"


def decode_cursor(cursor: str) -> Optional[Tuple[datetime, UUID]]:
    """Parse `<iso created_at>|<note id>`; None when malformed."""
    created_at, _, note_id = cursor.partition(CURSOR_SEPARATOR)
    try:
        return datetime.fromisoformat(created_at), UUID(note_id)
    except ValueError:
        return None


async def find_owned_note(session: AsyncSession, owner_id: UUID, note_id: UUID) -> Optional[Note]:
    """The note if it exists and belongs to `owner_id`, else None."""
    result = await session.execute(
        select(Note).where(Note.id == note_id, Note.owner_id == owner_id)
    )
    return result.scalar_one_or_none()


class NoteService:
    """
    Business logic layer for note operations.

    Error Handling Strategy:
        NotFoundError propagates as-is. SQLAlchemy failures are logged and
        wrapped in DatabaseError so internals never reach the client.
    """

    async def create_note(self, db: AsyncSession, owner_id: UUID, data: NoteCreate) -> NoteResponse:
        try:
            note = Note(owner_id=owner_id, title=data.title, content=data.content, tags=data.tags)
            db.add(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating note for %s: %s", owner_id, str(e))
            raise DatabaseError(message="Could not create the note. Please try again.")

        logger.info("Note created: %s (owner=%s)", note.id, owner_id)
        return NoteResponse.model_validate(note)

    async def get_note(self, db: AsyncSession, owner_id: UUID, note_id: UUID) -> NoteResponse:
        """
        Raises:
            NotFoundError: no such note for this owner (→ 404)
            DatabaseError: query execution failed (→ 500)
        """
        note = await self._load(db, owner_id, note_id)
        return NoteResponse.model_validate(note)

    async def update_note(
        self,
        db: AsyncSession,
        owner_id: UUID,
        note_id: UUID,
        data: NoteUpdate,
    ) -> NoteResponse:
        """Apply only the fields present in the request body."""
        note = await self._load(db, owner_id, note_id)

        for field in data.model_fields_set & {"title", "content", "tags"}:
            setattr(note, field, getattr(data, field))

        try:
            await db.flush()
            await db.refresh(note)
        except SQLAlchemyError as e:
            logger.error("Database error updating note %s: %s", note_id, str(e))
            raise DatabaseError(message="Could not update the note. Please try again.")

        return NoteResponse.model_validate(note)

    async def delete_note(self, db: AsyncSession, owner_id: UUID, note_id: UUID) -> None:
        """Remove the note together with its chat turns."""
        note = await self._load(db, owner_id, note_id)
        try:
            await db.execute(delete(ChatTurn).where(ChatTurn.note_id == note.id))
            await db.delete(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting note %s: %s", note_id, str(e))
            raise DatabaseError(message="Could not delete the note. Please try again.")

        logger.info("Note deleted: %s (owner=%s)", note_id, owner_id)

    async def list_notes(
        self,
        db: AsyncSession,
        owner_id: UUID,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> NoteListResponse:
        """
        List the owner's notes, newest first, with cursor-based pagination.

        How:
            - Cursor: (created_at, id) of the last item, so notes sharing a
              timestamp are neither skipped nor repeated
            - Fetch limit + 1 rows to know whether another page exists
            - An unparseable cursor is ignored (first page)

        Query plan:
            SELECT * FROM notes WHERE owner_id = :owner
              AND (created_at < :ts OR (created_at = :ts AND id < :id))
            ORDER BY created_at DESC, id DESC LIMIT :limit + 1
            → idx_notes_owner_created_at
        """
        try:
            query = select(Note).where(Note.owner_id == owner_id)

            position = decode_cursor(cursor) if cursor else None
            if position:
                cursor_ts, cursor_id = position
                query = query.where(
                    or_(
                        Note.created_at < cursor_ts,
                        and_(Note.created_at == cursor_ts, Note.id < cursor_id),
                    )
                )

            query = query.order_by(desc(Note.created_at), desc(Note.id)).limit(limit + 1)
            notes = list((await db.execute(query)).scalars().all())

            total_count = await db.scalar(
                select(func.count(Note.id)).where(Note.owner_id == owner_id)
            ) or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            )

        has_more = len(notes) > limit
        if has_more:
            notes = notes[:limit]

        next_cursor = encode_cursor(notes[-1]) if has_more and notes else None

        return NoteListResponse(
            notes=[
                NoteListItem(
                    id=note.id,
                    title=note.title,
                    content_preview=note.content[:PREVIEW_CHARS],
                    tags=note.tags,
                    created_at=note.created_at,
                )
                for note in notes
            ],
            total_count=total_count,
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def _load(self, db: AsyncSession, owner_id: UUID, note_id: UUID) -> Note:
        try:
            note = await find_owned_note(db, owner_id, note_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )
        if note is None:
            raise NotFoundError(resource="note")
        return note


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService()
