"""
Password hashing for the Auth service.
"""

import asyncio

from passlib.context import CryptContext

from shared.logging import get_logger
from ..errors import HashingError, PasswordTooLongError, VerificationError
from ..models import MAX_PASSWORD_BYTES

DEFAULT_BCRYPT_ROUNDS = 12


class CredentialHasher:
    """Salted, adaptive one-way password hashing (bcrypt).

    The cost factor is fixed when the hasher is built; changing it needs a
    redeploy. Hashing runs in a worker thread so that a slow bcrypt round only
    suspends the calling task. Neither plaintexts nor hashes are ever logged
    or placed in exception messages.
    """

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self.rounds = rounds
        self.logger = get_logger("auth.hasher")
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    async def hash(self, plaintext: str) -> str:
        """Hash a password.

        Raises:
            PasswordTooLongError: if the password is longer than bcrypt can
                hash without silently truncating it.
            HashingError: if the hash cannot be produced.
        """
        if _exceeds_limit(plaintext):
            raise PasswordTooLongError(MAX_PASSWORD_BYTES)

        try:
            return await asyncio.to_thread(self._context.hash, plaintext)
        except Exception as e:
            self.logger.error("Password hashing failed", error_type=type(e).__name__)
            raise HashingError() from None

    async def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a password against a stored hash.

        Returns False on mismatch, including for passwords too long to have
        been hashed in the first place.

        Raises:
            VerificationError: if the stored hash is malformed.
        """
        if _exceeds_limit(plaintext):
            return False

        try:
            return await asyncio.to_thread(self._context.verify, plaintext, hashed)
        except (ValueError, TypeError) as e:
            self.logger.error("Stored hash could not be verified", error_type=type(e).__name__)
            raise VerificationError() from None


def _exceeds_limit(plaintext) -> bool:
    return isinstance(plaintext, str) and len(plaintext.encode("utf-8")) > MAX_PASSWORD_BYTES
