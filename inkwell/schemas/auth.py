"""
Inkwell Backend — Auth and Credits Pydantic Schemas
=====================================================

What:  Request/response models for registration, login, profile and the
       credit ledger views.
"""

import uuid
from datetime import datetime
from typing import List

from pydantic import BaseModel, EmailStr, Field, field_validator


def _normalize_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class RegisterResponse(BaseModel):
    message: str = "User registered successfully"
    id: uuid.UUID
    credits: int


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ProfileResponse(BaseModel):
    email: str
    credits: int


class CreditBalanceResponse(BaseModel):
    """GET /api/credits: balance plus whether it matches the ledger sum."""
    balance: int
    reconciled: bool


class LedgerEntryResponse(BaseModel):
    id: int
    delta: int
    kind: str = Field(description="GRANT, DEDUCTION or REFUND")
    service: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerEntryListResponse(BaseModel):
    """GET /api/credits/transactions, newest first."""
    entries: List[LedgerEntryResponse]
