"""
Inkwell Backend — Account Service
===================================

What:  Registration, login and profile lookup.
How:   Registration inserts the account with a zero balance and credits the
       signup grant through the ledger on the same session, so the account
       row and its GRANT entry commit together (the request session commits
       in get_db_session).
Who:   Auth route handlers.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkwell.config import settings
from inkwell.exceptions import AuthenticationError, NotFoundError, ValidationError
from inkwell.models.account import Account
from inkwell.schemas.auth import ProfileResponse, RegisterResponse, TokenResponse
from inkwell.security import create_access_token, hash_password, verify_password
from inkwell.services.ledger_service import CreditLedger, credit_ledger

logger = logging.getLogger(__name__)

SIGNUP_SERVICE = "SIGNUP_BONUS"


class AccountService:

    def __init__(self, ledger: CreditLedger = credit_ledger):
        self.ledger = ledger

    async def register(self, db: AsyncSession, email: str, password: str) -> RegisterResponse:
        """
        Create an account and grant the starting credits.

        Raises:
            ValidationError: the email is already registered (→ 400)
        """
        existing = await db.scalar(select(Account.id).where(Account.email == email))
        if existing is not None:
            raise ValidationError(message="User already exists", field="email")

        account = Account(email=email, password_hash=hash_password(password), balance=0)
        db.add(account)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise ValidationError(message="User already exists", field="email")

        if settings.signup_grant > 0:
            await self.ledger.grant(
                account.id, settings.signup_grant, SIGNUP_SERVICE, session=db
            )

        logger.info("Account registered: %s", account.id)
        return RegisterResponse(id=account.id, credits=settings.signup_grant)

    async def login(self, db: AsyncSession, email: str, password: str) -> TokenResponse:
        """Raises AuthenticationError for unknown email, wrong password or inactive account."""
        account = await db.scalar(select(Account).where(Account.email == email))
        if account is None or not verify_password(password, account.password_hash):
            raise AuthenticationError(message="Invalid credentials")
        if not account.is_active:
            raise AuthenticationError(message="Account is deactivated")
        return TokenResponse(access_token=create_access_token(account.id))

    async def get_profile(self, db: AsyncSession, account_id: UUID) -> ProfileResponse:
        account = await db.scalar(select(Account).where(Account.id == account_id))
        if account is None:
            raise NotFoundError(resource="user")
        return ProfileResponse(email=account.email, credits=account.balance)


account_service = AccountService()
