"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - Access and refresh tokens verify back to the claims they were issued with
  - A token signed with the other secret, or of the other type, is InvalidToken
  - A correctly signed token past its expiry is ExpiredToken, never InvalidToken
  - Tampered and garbage tokens are InvalidToken
  - Two tokens issued in the same instant differ
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from auth.errors import ExpiredToken, InvalidToken
from auth.models import User
from auth.tokens import TokenCodec

ACCESS_SECRET = "a" * 16 + "access-secret-for-tests-only"
REFRESH_SECRET = "r" * 16 + "refresh-secret-for-tests-only"


@pytest.fixture
def user() -> User:
    return User(id=7, email="ann@example.com", display_name="Ann", hashed_password="x", role="auditor")


def test_access_token_round_trip(codec, clock, user):
    claims = codec.verify_access(codec.issue_access(user))
    assert claims.user_id == 7
    assert claims.email == "ann@example.com"
    assert claims.role == "auditor"
    assert claims.expires_at == clock.now() + timedelta(minutes=15)


def test_refresh_token_round_trip(codec, clock, user):
    claims = codec.verify_refresh(codec.issue_refresh(user))
    assert claims.user_id == 7
    assert claims.expires_at == clock.now() + timedelta(days=7)


def test_refresh_token_carries_no_email_or_role(codec, user):
    payload = jwt.get_unverified_claims(codec.issue_refresh(user))
    assert "email" not in payload
    assert "role" not in payload
    assert payload["type"] == "refresh"


def test_refresh_token_rejected_as_access_token(codec, user):
    with pytest.raises(InvalidToken):
        codec.verify_access(codec.issue_refresh(user))


def test_access_token_rejected_as_refresh_token(codec, user):
    with pytest.raises(InvalidToken):
        codec.verify_refresh(codec.issue_access(user))


def test_wrong_type_rejected_even_with_shared_secret(clock, user):
    """The type claim alone keeps the kinds apart if the secrets ever match."""
    same = TokenCodec(ACCESS_SECRET, ACCESS_SECRET, clock=clock)
    with pytest.raises(InvalidToken):
        same.verify_access(same.issue_refresh(user))


def test_token_from_other_secret_is_invalid(clock, user):
    other = TokenCodec("z" * 40, "y" * 40, clock=clock)
    with pytest.raises(InvalidToken):
        TokenCodec(ACCESS_SECRET, REFRESH_SECRET, clock=clock).verify_access(other.issue_access(user))


def test_expired_access_token_is_expired_not_invalid(codec, clock, user):
    token = codec.issue_access(user)
    clock.advance(minutes=15)
    with pytest.raises(ExpiredToken):
        codec.verify_access(token)


def test_access_token_valid_just_before_expiry(codec, clock, user):
    token = codec.issue_access(user)
    clock.advance(minutes=14, seconds=59)
    assert codec.verify_access(token).user_id == 7


def test_expired_refresh_token_is_expired(codec, clock, user):
    token = codec.issue_refresh(user)
    clock.advance(days=7, seconds=1)
    with pytest.raises(ExpiredToken):
        codec.verify_refresh(token)


def test_negative_ttl_yields_expired(clock, user):
    codec = TokenCodec(ACCESS_SECRET, REFRESH_SECRET, clock=clock, access_ttl=timedelta(seconds=-1))
    with pytest.raises(ExpiredToken):
        codec.verify_access(codec.issue_access(user))


def test_expired_and_forged_is_invalid(codec, clock, user):
    """Signature is checked before expiry."""
    forged = TokenCodec("q" * 40, "w" * 40, clock=clock).issue_access(user)
    clock.advance(days=1)
    with pytest.raises(InvalidToken):
        codec.verify_access(forged)


def test_tampered_token_is_invalid(codec, user):
    token = codec.issue_access(user)
    header, payload, signature = token.split(".")
    flipped = signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")
    with pytest.raises(InvalidToken):
        codec.verify_access(f"{header}.{payload}.{flipped}")


@pytest.mark.parametrize("garbage", ["", "not.a.jwt", "abc", None])
def test_garbage_is_invalid(codec, garbage):
    with pytest.raises(InvalidToken):
        codec.verify_access(garbage)


def test_tokens_issued_same_instant_differ(codec, user):
    assert codec.issue_access(user) != codec.issue_access(user)
    assert codec.issue_refresh(user) != codec.issue_refresh(user)


def test_missing_user_id_claim_is_invalid(codec, clock):
    token = jwt.encode(
        {"type": "access", "exp": int(clock.now().timestamp()) + 60, "jti": "x", "email": "a@x.com", "role": "admin"},
        ACCESS_SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidToken):
        codec.verify_access(token)


def test_issue_for_unsaved_user_raises(codec):
    with pytest.raises(ValueError):
        codec.issue_access(User(email="a@x.com", display_name="Ann", hashed_password="x"))


def test_missing_secret_raises():
    with pytest.raises(ValueError):
        TokenCodec("", REFRESH_SECRET)
