"""
Inkwell Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the whole suite.
How:   The environment is pointed at a throwaway SQLite file BEFORE anything
       from `inkwell` is imported, so the module-level engine and settings
       singletons are built for tests.

Fixture Hierarchy:
    Function-scoped:
    ├── database:        fresh schema (drop_all + create_all) on the test DB
    ├── make_account:    account factory with a reconciled starting balance
    ├── make_note:       note factory for an owner
    ├── fake_gateway:    in-memory LLMService recording its calls
    ├── mock_db_session: AsyncMock session for pure unit tests
    ├── app / test_client: fresh FastAPI app over httpx ASGITransport
    └── register_and_login: helper returning auth headers for a new user
"""

import os
import tempfile
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (before any inkwell import)
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="inkwell_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["LLM_API_KEY"] = "test-key-not-real"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from inkwell.database import Base, async_session_factory, engine, transaction  # noqa: E402
from inkwell.exceptions import LLMServiceError  # noqa: E402
from inkwell.models.account import Account  # noqa: E402
from inkwell.models.note import Note  # noqa: E402
from inkwell.security import hash_password  # noqa: E402
from inkwell.services.ledger_service import credit_ledger  # noqa: E402
from inkwell.services.llm_base import LLMService  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """Rebuild the schema so every test starts from empty tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_session_factory


@pytest_asyncio.fixture
async def make_account(database):
    """
    Factory: create an account whose balance comes from one GRANT entry.

    Usage:
        account_id = await make_account(balance=5)
    """
    # Hashing once keeps bcrypt cost out of every call
    password_hash = hash_password(TEST_PASSWORD)
    counter = {"n": 0}

    async def _make(balance: int = 0, email: Optional[str] = None, is_active: bool = True):
        counter["n"] += 1
        async with transaction() as session:
            account = Account(
                email=email or f"user{counter['n']}@example.com",
                password_hash=password_hash,
                balance=0,
                is_active=is_active,
            )
            session.add(account)
            await session.flush()
            account_id = account.id
        if balance:
            await credit_ledger.grant(account_id, balance, "TEST_GRANT")
        return account_id

    return _make


@pytest_asyncio.fixture
async def make_note(database):
    """Factory: create a note owned by `owner_id`, returning its id."""

    async def _make(owner_id, title: str = "Photosynthesis", content: str = "Plants turn light into sugar."):
        async with transaction() as session:
            note = Note(owner_id=owner_id, title=title, content=content)
            session.add(note)
            await session.flush()
            return note.id

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Gateway Fake
# ══════════════════════════════════════════════════════════════════════════

class FakeGateway(LLMService):
    """
    In-memory LLMService.

    Set `tags`, `reply` or `error` before the call; inspect `calls` after.
    """

    def __init__(self):
        self.tags: List[str] = ["biology", "plants"]
        self.reply = "Plants make sugar from light."
        self.error: Optional[LLMServiceError] = None
        self.calls: List[Dict] = []

    async def extract_tags(self, text: str) -> List[str]:
        self.calls.append({"op": "tags", "text": text})
        if self.error:
            raise self.error
        return list(self.tags)

    async def answer(self, note_text, question, history=()):
        self.calls.append(
            {"op": "chat", "note": note_text, "question": question, "history": list(history)}
        )
        if self.error:
            raise self.error
        return self.reply

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def fake_gateway():
    return FakeGateway()


# ══════════════════════════════════════════════════════════════════════════
# Unit-test Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session for tests that need no real database.

    Usage:
        mock_db_session.execute.side_effect = OperationalError(...)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# HTTP Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(database, fake_gateway):
    """Fresh application (own limiter state) with the fake gateway injected."""
    from inkwell.main import create_app
    from inkwell.services.note_ai_service import NoteAIService, get_note_ai_service

    application = create_app()
    service = NoteAIService(gateway=fake_gateway)
    application.dependency_overrides[get_note_ai_service] = lambda: service
    return application


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient talking to the app in-process.

    Usage:
        response = await test_client.get("/health")
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def register_and_login(test_client):
    """Helper: register a user through the API and return bearer headers."""

    async def _register(email: str = "reader@example.com") -> Dict[str, str]:
        response = await test_client.post(
            "/api/auth/register", json={"email": email, "password": TEST_PASSWORD}
        )
        assert response.status_code == 201, response.text
        response = await test_client.post(
            "/api/auth/login", json={"email": email, "password": TEST_PASSWORD}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _register
