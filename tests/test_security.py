"""
Inkwell Backend — Password and Token Tests
============================================
"""

from uuid import uuid4

import pytest
from jose import jwt

from inkwell.config import settings
from inkwell.exceptions import AuthenticationError
from inkwell.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("other-pass", hashed)


def test_verify_against_malformed_hash():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_token_round_trip():
    account_id = uuid4()
    assert decode_access_token(create_access_token(account_id)) == account_id


def test_expired_token_rejected():
    token = create_access_token(uuid4(), minutes=-1)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_token_signed_with_other_secret_rejected():
    token = jwt.encode({"sub": str(uuid4())}, "another-secret", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_token_with_bad_subject_rejected():
    token = jwt.encode({"sub": "not-a-uuid"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)
