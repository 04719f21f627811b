"""
Inkwell Backend — Password Hashing and Bearer Tokens
======================================================

What:  bcrypt password hashing, HS256 JWT issuing/verification, and the
       `get_current_account_id` FastAPI dependency.
How:   Tokens carry `sub` = account UUID plus iat/exp. The dependency trusts a
       verified token completely and does not reload the account.
Who:   AccountService (hash/verify/issue) and every authenticated route.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from inkwell.config import settings
from inkwell.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False, scheme_name="bearerAuth")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(account_id: UUID, minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes or settings.jwt_expire_minutes)
    payload: Dict[str, Any] = {
        "sub": str(account_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID:
    """
    Verify a bearer token and return the account id it names.

    Raises:
        AuthenticationError: bad signature, expired, or missing/invalid sub
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info("Rejected bearer token: %s", str(e))
        raise AuthenticationError()

    try:
        return UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError(message="Invalid token subject")


async def get_current_account_id(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> UUID:
    """FastAPI dependency: the verified account id of the caller."""
    if creds is None:
        raise AuthenticationError(message="Unauthenticated")
    account_id = decode_access_token(creds.credentials)
    # Per-account rate limiters key on this
    request.state.account_id = account_id
    return account_id
