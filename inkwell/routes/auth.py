"""
Inkwell Backend — Auth Route Handlers
=======================================

What:  Registration, login and the caller's profile.
How:   Register/login are limited per IP (`limit_auth`); /me requires a
       bearer token and counts against the per-account limit.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from inkwell.database import get_db_session
from inkwell.middleware.rate_limit import limit_account, limit_auth
from inkwell.schemas.auth import (
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from inkwell.schemas.note import ErrorResponse
from inkwell.services.account_service import account_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_auth)],
    responses={400: {"description": "Invalid input or email taken", "model": ErrorResponse}},
    summary="Create an account with the signup credit grant",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> RegisterResponse:
    return await account_service.register(db, body.email, body.password)


@router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(limit_auth)],
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Exchange credentials for a bearer token",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    return await account_service.login(db, body.email, body.password)


@router.get("/me", response_model=ProfileResponse, summary="Current user's email and credits")
async def me(
    account_id: UUID = Depends(limit_account),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await account_service.get_profile(db, account_id)
