"""
Inkwell Backend — Note and Chat Turn SQLAlchemy Models
========================================================

What:  ORM models for `notes` and `chat_turns`.
How:   Inherits from the shared DeclarativeBase; Alembic reads these for migrations.
Who:   NoteService for CRUD, NoteAIService for ownership checks and chat history.

Table Design:
    - notes.owner_id: every note belongs to exactly one account; every query
      filters on it, so a foreign note is indistinguishable from a missing one
    - notes.tags: free-form comma-separated string supplied by the client
    - chat_turns: append-only conversation attached to a note, ordered by
      (created_at, id); removed together with the note

    Index on (owner_id, created_at DESC):
        Serves the "my notes, newest first" listing.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from inkwell.database import Base


class Note(Base):
    """A user's note, the resource the paid AI actions operate on."""

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    tags: Mapped[Optional[str]] = mapped_column(
        String(2000),
        nullable=True,
        default=None,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_notes_owner_created_at", "owner_id", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, owner_id={self.owner_id}, title='{self.title[:30]}')>"


class ChatTurn(Base):
    """
    One message in a note's chat history.

    role is 'user' or 'assistant'. Turns are written one at a time (user turn
    first, then the assistant reply) and are never edited.
    """

    __tablename__ = "chat_turns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
    )

    role: Mapped[str] = mapped_column(String(20), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_chat_turns_note_created", "note_id", "created_at"),
        CheckConstraint("role IN ('user', 'assistant')", name="ck_chat_turns_role"),
    )

    def __repr__(self) -> str:
        return f"<ChatTurn(note_id={self.note_id}, role='{self.role}')>"
