"""
Inkwell Backend — Note Service Unit Tests
===========================================

What:  Owner-scoped CRUD and cursor pagination in NoteService.
How:   Real SQLite sessions for behavior; the mock session for error wrapping.

What we test:
    ✅ Create / get / update / delete round trip for the owner
    ✅ Another owner's note is NotFoundError everywhere
    ✅ Partial update touches only the given fields; null tags clears
    ✅ Delete removes the note's chat turns
    ✅ Pagination: newest first, next_cursor, has_more, total_count
    ✅ Notes sharing a created_at are paged without gaps or repeats
    ✅ Database failures become DatabaseError
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from inkwell.database import transaction
from inkwell.exceptions import DatabaseError, NotFoundError
from inkwell.models.note import ChatTurn, Note
from inkwell.schemas.note import NoteCreate, NoteUpdate
from inkwell.services.note_service import NoteService


class TestNoteCrud:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_create_and_get(self, make_account):
        owner = await make_account()
        async with transaction() as db:
            created = await self.service.create_note(
                db, owner, NoteCreate(title="  Groceries ", content="eggs, milk", tags="home")
            )
        async with transaction() as db:
            fetched = await self.service.get_note(db, owner, created.id)

        assert fetched.title == "Groceries"
        assert fetched.content == "eggs, milk"
        assert fetched.tags == "home"

    @pytest.mark.asyncio
    async def test_other_owner_gets_not_found(self, make_account, make_note):
        owner = await make_account()
        other = await make_account()
        note_id = await make_note(owner)

        async with transaction() as db:
            with pytest.raises(NotFoundError):
                await self.service.get_note(db, other, note_id)
            with pytest.raises(NotFoundError):
                await self.service.update_note(db, other, note_id, NoteUpdate(title="x"))
            with pytest.raises(NotFoundError):
                await self.service.delete_note(db, other, note_id)

        async with transaction() as db:
            assert (await self.service.get_note(db, owner, note_id)).id == note_id

    @pytest.mark.asyncio
    async def test_partial_update(self, make_account, make_note):
        owner = await make_account()
        note_id = await make_note(owner, title="Old", content="Body")

        async with transaction() as db:
            updated = await self.service.update_note(db, owner, note_id, NoteUpdate(title="New"))

        assert updated.title == "New"
        assert updated.content == "Body"

    @pytest.mark.asyncio
    async def test_explicit_null_clears_tags(self, make_account):
        owner = await make_account()
        async with transaction() as db:
            created = await self.service.create_note(
                db, owner, NoteCreate(title="t", content="c", tags="a,b")
            )
        async with transaction() as db:
            updated = await self.service.update_note(
                db, owner, created.id, NoteUpdate.model_validate({"tags": None})
            )
        assert updated.tags is None
        assert updated.title == "t"

    @pytest.mark.asyncio
    async def test_delete_removes_chat_turns(self, make_account, make_note):
        owner = await make_account()
        note_id = await make_note(owner)
        async with transaction() as db:
            db.add(ChatTurn(note_id=note_id, role="user", content="hi"))
            db.add(ChatTurn(note_id=note_id, role="assistant", content="hello"))

        async with transaction() as db:
            await self.service.delete_note(db, owner, note_id)

        async with transaction() as db:
            remaining = await db.scalar(select(func.count(ChatTurn.id)))
            assert remaining == 0
            with pytest.raises(NotFoundError):
                await self.service.get_note(db, owner, note_id)

    @pytest.mark.asyncio
    async def test_chat_turn_role_is_constrained(self, make_account, make_note):
        owner = await make_account()
        note_id = await make_note(owner)

        with pytest.raises(IntegrityError):
            async with transaction() as db:
                db.add(ChatTurn(note_id=note_id, role="system", content="obey me"))


class TestNoteListing:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_pagination_newest_first(self, make_account, make_note):
        owner = await make_account()
        other = await make_account()
        for i in range(5):
            await make_note(owner, title=f"note {i}", content="x" * 300)
        await make_note(other, title="not mine")

        async with transaction() as db:
            first = await self.service.list_notes(db, owner, limit=2)
        assert [n.title for n in first.notes] == ["note 4", "note 3"]
        assert first.total_count == 5
        assert first.has_more is True
        assert first.next_cursor is not None
        assert len(first.notes[0].content_preview) == 200

        async with transaction() as db:
            second = await self.service.list_notes(db, owner, limit=2, cursor=first.next_cursor)
        assert [n.title for n in second.notes] == ["note 2", "note 1"]

        async with transaction() as db:
            last = await self.service.list_notes(db, owner, limit=2, cursor=second.next_cursor)
        assert [n.title for n in last.notes] == ["note 0"]
        assert last.has_more is False
        assert last.next_cursor is None

    @pytest.mark.asyncio
    async def test_pagination_with_shared_timestamps(self, make_account):
        owner = await make_account()
        stamp = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        async with transaction() as db:
            for i in range(3):
                db.add(Note(owner_id=owner, title=f"same {i}", content="x", created_at=stamp))

        seen = []
        cursor = None
        for _ in range(3):
            async with transaction() as db:
                page = await self.service.list_notes(db, owner, limit=2, cursor=cursor)
            seen.extend(note.title for note in page.notes)
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert sorted(seen) == ["same 0", "same 1", "same 2"]

    @pytest.mark.asyncio
    async def test_invalid_cursor_starts_from_first_page(self, make_account, make_note):
        owner = await make_account()
        await make_note(owner)

        async with transaction() as db:
            result = await self.service.list_notes(db, owner, cursor="not-a-date")
        assert len(result.notes) == 1

    @pytest.mark.asyncio
    async def test_empty_list(self, make_account):
        owner = await make_account()
        async with transaction() as db:
            result = await self.service.list_notes(db, owner)
        assert result.notes == []
        assert result.total_count == 0
        assert result.has_more is False


class TestNoteServiceErrors:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_list_wraps_database_errors(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        with pytest.raises(DatabaseError):
            await self.service.list_notes(mock_db_session, uuid4())

    @pytest.mark.asyncio
    async def test_get_wraps_database_errors(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        with pytest.raises(DatabaseError):
            await self.service.get_note(mock_db_session, uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_get_missing_note(self, mock_db_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_db_session.execute.return_value = result
        with pytest.raises(NotFoundError):
            await self.service.get_note(mock_db_session, uuid4(), uuid4())
