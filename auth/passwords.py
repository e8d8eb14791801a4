"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

  Salt: bcrypt.gensalt() draws a fresh random salt per call and the salt is
       embedded in the output, so two hashes of one password differ while
       both verify.

  Cost: the work factor (rounds) is a constructor argument fed from
       Settings.bcrypt_rounds. Tests use the minimum (4) for speed.

  Timing: bcrypt.checkpw compares the recomputed hash in constant time. The
       dummy hash lets the engine spend the same bcrypt cost on an unknown
       email as on a wrong password, so response time does not reveal which
       emails are registered.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

# bcrypt silently ignores everything past 72 bytes. The engine rejects longer
# passwords up front instead of accepting a truncated secret.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self._dummy_hash = self.hash("authcore_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt hash of the plaintext password."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A malformed stored hash verifies as False rather than raising.
        """
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one verification's worth of CPU against a throwaway hash."""
        self.verify(plain, self._dummy_hash)
