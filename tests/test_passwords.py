"""
tests/test_passwords.py -- Unit tests for auth/passwords.py.

Covers:
  - hash() output is salted: same password twice gives different hashes
  - verify() accepts the right password and rejects a wrong one
  - A malformed stored hash verifies as False instead of raising
  - verify_dummy() runs without raising and returns nothing
"""

from __future__ import annotations


def test_hash_is_salted(hasher):
    first = hasher.hash("correct horse battery")
    second = hasher.hash("correct horse battery")
    assert first != second
    assert first.startswith("$2")


def test_hash_never_contains_plaintext(hasher):
    assert "correct horse battery" not in hasher.hash("correct horse battery")


def test_verify_accepts_matching_password(hasher):
    hashed = hasher.hash("pw12345678")
    assert hasher.verify("pw12345678", hashed) is True


def test_verify_rejects_wrong_password(hasher):
    hashed = hasher.hash("pw12345678")
    assert hasher.verify("pw12345679", hashed) is False


def test_verify_malformed_hash_returns_false(hasher):
    assert hasher.verify("pw12345678", "not-a-bcrypt-hash") is False


def test_verify_dummy_does_not_raise(hasher):
    assert hasher.verify_dummy("anything at all") is None


def test_rounds_are_embedded_in_hash(hasher):
    # bcrypt encodes the cost as "$2b$04$..."
    assert hasher.hash("pw12345678").split("$")[2] == "04"
