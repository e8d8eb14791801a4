"""
tests/test_store.py -- Contract tests for the credential and session stores.

Every test runs twice: once against the SQLAlchemy stores (auth/store.py) on
in-memory SQLite and once against the dict-backed stores (auth/memory.py).

Covers:
  - Email uniqueness is case-insensitive and violations raise Conflict
  - Token uniqueness raises Conflict
  - delete_by_value reports 1 then 0 for the same token
  - delete_all_by_user only touches the given user's records
  - purge_expired removes records at or before the cutoff
  - update_user bumps version and rejects unknown fields
  - put() stamps issued_at from the store clock when none is given
  - in-memory SQLite URLs get a per-thread connection pool
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.pool import SingletonThreadPool

from auth.errors import Conflict
from auth.memory import MemorySessionStore, MemoryUserStore
from auth.models import User
from auth.store import SessionStore, UserStore

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(params=["sql", "memory"])
def users(request, clock):
    if request.param == "sql":
        store = UserStore("sqlite:///:memory:", clock=clock)
    else:
        store = MemoryUserStore(clock=clock)
    yield store
    store.close()


@pytest.fixture(params=["sql", "memory"])
def sessions(request, clock):
    if request.param == "sql":
        store = SessionStore("sqlite:///:memory:", clock=clock)
    else:
        store = MemorySessionStore(clock=clock)
    yield store
    store.close()


def _user(email: str = "ann@example.com", **kwargs) -> User:
    return User(email=email, display_name="Ann", hashed_password="$2b$04$hash", **kwargs)


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


def test_create_and_fetch_user(users, clock):
    user_id = users.create_user(_user(role="admin"))
    user = users.get_by_id(user_id)
    assert user.id == user_id
    assert user.email == "ann@example.com"
    assert user.role == "admin"
    assert user.is_active is True
    assert user.last_login is None
    assert user.created_at == clock.now()
    assert user.version == 0


def test_email_is_normalized_and_case_insensitive(users):
    user_id = users.create_user(_user(email="  Ann@Example.COM "))
    assert users.get_by_email("ann@example.com").id == user_id
    assert users.get_by_email("ANN@example.com").id == user_id


def test_duplicate_email_raises_conflict(users):
    users.create_user(_user(email="ann@example.com"))
    with pytest.raises(Conflict):
        users.create_user(_user(email="ANN@example.com"))


def test_missing_user_returns_none(users):
    assert users.get_by_email("nobody@example.com") is None
    assert users.get_by_id(999) is None


def test_update_last_login(users):
    user_id = users.create_user(_user())
    when = T0 + timedelta(hours=3, microseconds=250)
    assert users.update_last_login(user_id, when) is True
    assert users.get_by_id(user_id).last_login == when
    assert users.update_last_login(999, when) is False


def test_update_user_bumps_version(users, clock):
    user_id = users.create_user(_user())
    clock.advance(minutes=5)
    assert users.update_user(user_id, is_active=False, display_name="Annie") is True
    user = users.get_by_id(user_id)
    assert user.is_active is False
    assert user.display_name == "Annie"
    assert user.version == 1
    assert user.updated_at == clock.now()


def test_update_user_unknown_field_raises(users):
    user_id = users.create_user(_user())
    with pytest.raises(ValueError):
        users.update_user(user_id, email="other@example.com")


def test_update_missing_user_returns_false(users):
    assert users.update_user(999, is_active=False) is False


def test_list_users_ordered_by_email(users):
    users.create_user(_user(email="zed@example.com"))
    users.create_user(_user(email="amy@example.com"))
    assert [u.email for u in users.list_users()] == ["amy@example.com", "zed@example.com"]


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------


def test_put_and_find(sessions):
    sessions.put("tok-1", 1, T0 + timedelta(days=7), issued_at=T0)
    record = sessions.find_by_value("tok-1")
    assert record.user_id == 1
    assert record.expires_at == T0 + timedelta(days=7)
    assert record.issued_at == T0
    assert sessions.find_by_value("tok-2") is None


def test_put_defaults_issued_at_to_store_clock(sessions, clock):
    clock.advance(hours=2, microseconds=17)
    sessions.put("tok-1", 1, T0 + timedelta(days=7))
    assert sessions.find_by_value("tok-1").issued_at == clock.now()


def test_duplicate_token_raises_conflict(sessions):
    sessions.put("tok-1", 1, T0)
    with pytest.raises(Conflict):
        sessions.put("tok-1", 2, T0)


def test_delete_by_value_is_single_use(sessions):
    sessions.put("tok-1", 1, T0)
    assert sessions.delete_by_value("tok-1") == 1
    assert sessions.delete_by_value("tok-1") == 0
    assert sessions.find_by_value("tok-1") is None


def test_delete_all_by_user_scoped_to_owner(sessions):
    sessions.put("a1", 1, T0)
    sessions.put("a2", 1, T0)
    sessions.put("b1", 2, T0)
    assert sessions.delete_all_by_user(1) == 2
    assert sessions.count_for_user(1) == 0
    assert sessions.count_for_user(2) == 1
    assert sessions.delete_all_by_user(1) == 0


def test_purge_expired(sessions):
    sessions.put("old", 1, T0 - timedelta(seconds=1))
    sessions.put("edge", 1, T0)
    sessions.put("live", 1, T0 + timedelta(seconds=1))
    assert sessions.purge_expired(T0) == 2
    assert sessions.find_by_value("live") is not None
    assert sessions.find_by_value("edge") is None


# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "db_url",
    [
        "sqlite:///:memory:",
        "sqlite://",
        "sqlite:///file:test_store_pool?mode=memory&cache=shared&uri=true",
    ],
)
def test_in_memory_sqlite_uses_one_connection_per_thread(db_url):
    store = SessionStore(db_url)
    try:
        assert isinstance(store.engine.pool, SingletonThreadPool)
    finally:
        store.close()


def test_file_sqlite_uses_default_pool(tmp_path):
    store = SessionStore(f"sqlite:///{tmp_path / 'sessions.db'}")
    try:
        assert not isinstance(store.engine.pool, SingletonThreadPool)
    finally:
        store.close()
