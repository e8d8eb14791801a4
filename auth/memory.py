"""
auth/memory.py -- In-process credential and session stores.

Same contracts as UserStore / SessionStore in auth/store.py, backed by dicts.
Used by the engine unit tests and anywhere a throwaway store is enough.

Every read and write holds the store's lock, so delete_by_value() keeps the
single-use guarantee under concurrent callers: exactly one of two racing
deletes of the same token observes 1.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime

from auth.errors import Conflict
from auth.models import RefreshToken, User
from auth.store import normalize_email
from core.clock import Clock, SystemClock


class MemoryUserStore:
    _UPDATABLE_FIELDS: frozenset[str] = frozenset({"display_name", "role", "is_active", "hashed_password"})

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()
        self._users: dict[int, User] = {}
        self._by_email: dict[str, int] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create_user(self, user: User) -> int:
        email = normalize_email(user.email)
        now = self.clock.now()
        with self._lock:
            if email in self._by_email:
                raise Conflict("create_user: unique constraint violated")
            user_id = self._next_id
            self._next_id += 1
            self._users[user_id] = replace(
                user, id=user_id, email=email, created_at=now, updated_at=now, version=0, last_login=None
            )
            self._by_email[email] = user_id
        return user_id

    def get_by_email(self, email: str) -> User | None:
        with self._lock:
            user_id = self._by_email.get(normalize_email(email))
            return replace(self._users[user_id]) if user_id is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user is not None else None

    def list_users(self) -> list[User]:
        with self._lock:
            return sorted((replace(u) for u in self._users.values()), key=lambda u: u.email)

    def update_last_login(self, user_id: int, when: datetime) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = replace(user, last_login=when)
        return True

    def update_user(self, user_id: int, **fields) -> bool:
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        now = self.clock.now()
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            self._users[user_id] = replace(user, updated_at=now, version=user.version + 1, **fields)
        return True

    def close(self) -> None:
        pass


class MemorySessionStore:
    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()
        self._tokens: dict[str, RefreshToken] = {}
        self._lock = threading.Lock()

    def put(self, token: str, user_id: int, expires_at: datetime, issued_at: datetime | None = None) -> None:
        record = RefreshToken(
            token=token,
            user_id=user_id,
            expires_at=expires_at,
            issued_at=issued_at or self.clock.now(),
        )
        with self._lock:
            if token in self._tokens:
                raise Conflict("put: unique constraint violated")
            self._tokens[token] = record

    def find_by_value(self, token: str) -> RefreshToken | None:
        with self._lock:
            return self._tokens.get(token)

    def delete_by_value(self, token: str) -> int:
        with self._lock:
            return 1 if self._tokens.pop(token, None) is not None else 0

    def delete_all_by_user(self, user_id: int) -> int:
        with self._lock:
            doomed = [t for t, rec in self._tokens.items() if rec.user_id == user_id]
            for t in doomed:
                del self._tokens[t]
        return len(doomed)

    def count_for_user(self, user_id: int) -> int:
        with self._lock:
            return sum(1 for rec in self._tokens.values() if rec.user_id == user_id)

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            doomed = [t for t, rec in self._tokens.items() if rec.expires_at <= now]
            for t in doomed:
                del self._tokens[t]
        return len(doomed)

    def close(self) -> None:
        pass
