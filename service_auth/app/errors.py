"""
Auth service exceptions.

Errors raised by the hasher, token issuer, user store, profile cache and
event notifier. The HTTP layer renders them through the shared
ServiceException handler; CacheError and PublishError never reach it because
the orchestrator absorbs them.
"""

from typing import Optional

from shared.errors import (
    AuthenticationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    OperationTimeoutError,
    ServiceError,
    ValidationError,
)

INVALID_CREDENTIALS_MESSAGE = "invalid credentials"


class EmptyCredentialError(ValidationError):
    """Raised when a registration arrives without a password."""

    def __init__(self, message: str = "password required"):
        super().__init__(message, code="EMPTY_CREDENTIAL")


class PasswordTooLongError(ValidationError):
    """Raised when a password exceeds what bcrypt can hash without truncation."""

    def __init__(self, max_bytes: int):
        super().__init__(
            f"password must be at most {max_bytes} bytes",
            code="PASSWORD_TOO_LONG",
            details={"max_bytes": max_bytes},
        )


class DuplicateEmailError(ConflictError):
    """Raised when the email address is already registered."""

    def __init__(self, message: str = "email already registered"):
        super().__init__(message, code="DUPLICATE_EMAIL")


class InvalidCredentialsError(AuthenticationError):
    """Raised by login for an unknown email and for a wrong password alike."""

    def __init__(self):
        super().__init__(INVALID_CREDENTIALS_MESSAGE, code="INVALID_CREDENTIALS")


class UserNotFoundError(NotFoundError):
    """Raised when a profile lookup finds no user."""

    def __init__(self, user_id: int):
        super().__init__(
            "user not found",
            code="USER_NOT_FOUND",
            details={"user_id": user_id},
        )


class TokenInvalidError(AuthenticationError):
    """Raised when a token is malformed, forged or expired."""

    def __init__(self, reason: str = "invalid token"):
        super().__init__("invalid token", code="TOKEN_INVALID", details={"reason": reason})


class HashingError(ServiceError):
    """Raised when a password hash cannot be produced."""

    def __init__(self, message: str = "password hashing failed"):
        super().__init__(message, code="HASHING_ERROR")


class VerificationError(ServiceError):
    """Raised when a stored hash is malformed and cannot be checked."""

    def __init__(self, message: str = "stored credential could not be verified"):
        super().__init__(message, code="VERIFICATION_ERROR")


class PersistenceError(ServiceError):
    """Raised for any user store failure other than a duplicate email."""

    def __init__(self, message: str = "persistence failure", operation: Optional[str] = None):
        super().__init__(
            message,
            code="PERSISTENCE_ERROR",
            details={"operation": operation} if operation else None,
        )


class CacheError(ExternalServiceError):
    """Raised by the shared cache tier. Never surfaced to clients."""

    def __init__(self, message: str = "cache backend failure"):
        super().__init__("redis", message, code="CACHE_ERROR")


class PublishError(ExternalServiceError):
    """Raised when an event cannot be delivered. Never surfaced to clients."""

    def __init__(self, topic: str, message: str = "publish failed"):
        self.topic = topic
        super().__init__("kafka", message, details={"topic": topic}, code="PUBLISH_ERROR")


__all__ = [
    "EmptyCredentialError",
    "PasswordTooLongError",
    "DuplicateEmailError",
    "InvalidCredentialsError",
    "UserNotFoundError",
    "TokenInvalidError",
    "HashingError",
    "VerificationError",
    "PersistenceError",
    "CacheError",
    "PublishError",
    "OperationTimeoutError",
]
