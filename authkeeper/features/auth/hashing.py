"""Password hashing (Argon2id via pwdlib)."""

import logging

from argon2.exceptions import HashingError
from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError
from pwdlib.hashers.argon2 import Argon2Hasher

from authkeeper.config.settings import Settings, settings

from .exceptions import CredentialHashError

logger = logging.getLogger(__name__)


class CredentialHasher:
    """One-way salted password hashing.

    Hashes are PHC strings (``$argon2id$v=19$m=...,t=...,p=...$salt$hash``),
    so a hash made under old cost parameters still verifies after the
    parameters are raised.
    """

    def __init__(self, memory_cost: int, time_cost: int, parallelism: int):
        self._hasher = PasswordHash(
            (Argon2Hasher(memory_cost=memory_cost, time_cost=time_cost, parallelism=parallelism),)
        )
        self._dummy_hash: str | None = None

    @classmethod
    def from_settings(cls, config: Settings) -> "CredentialHasher":
        return cls(
            memory_cost=config.argon2_memory_cost,
            time_cost=config.argon2_time_cost,
            parallelism=config.argon2_parallelism,
        )

    def hash(self, password: str) -> str:
        """Hash a password. Salt is generated and embedded in the result.

        Raises:
            CredentialHashError: If the underlying Argon2 call fails

        """
        try:
            return self._hasher.hash(password)
        except HashingError as err:
            logger.error(f"Password hashing failed: {err}")
            raise CredentialHashError("Failed to hash password") from err

    def verify(self, hashed: str, password: str) -> bool:
        """Verify a password. Returns False for malformed hashes instead of raising."""
        try:
            return self._hasher.verify(password, hashed)
        except (UnknownHashError, ValueError, TypeError):
            logger.warning("Password verification against an unparseable hash")
            return False

    def dummy_verify(self, password: str) -> None:
        """Spend one verification's worth of time for an identifier with no account."""
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash("dummy-password-for-timing")
        self._hasher.verify(password, self._dummy_hash)

    def verify_and_update(self, hashed: str, password: str) -> tuple[bool, str | None]:
        """Verify a password and return a fresh hash when the stored parameters are outdated."""
        try:
            return self._hasher.verify_and_update(password, hashed)
        except (UnknownHashError, ValueError, TypeError):
            logger.warning("Password verification against an unparseable hash")
            return False, None
        except HashingError as err:
            raise CredentialHashError("Failed to re-hash password") from err


credential_hasher = CredentialHasher.from_settings(settings)
