"""Password hashing with Argon2id."""

import logging

from argon2 import PasswordHasher as Argon2Hasher
from argon2 import Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger("auth_service")

MEMORY_COST_KIB = 19456  # 19 MiB
TIME_COST = 2
PARALLELISM = 1
HASH_LENGTH = 32


class PasswordHasher:
    """Memory-hard one-way hashing. ``verify`` fails closed and never raises."""

    def __init__(self) -> None:
        self._hasher = Argon2Hasher(
            time_cost=TIME_COST,
            memory_cost=MEMORY_COST_KIB,
            parallelism=PARALLELISM,
            hash_len=HASH_LENGTH,
            type=Type.ID,
        )

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, digest: str | None, password: str) -> bool:
        if not digest:
            return False
        try:
            return self._hasher.verify(digest, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False
        except Exception:
            logger.exception("Password verification error")
            return False


_password_hasher: PasswordHasher | None = None


def get_password_hasher() -> PasswordHasher:
    """Get singleton password hasher instance."""
    global _password_hasher
    if _password_hasher is None:
        _password_hasher = PasswordHasher()
    return _password_hasher
