"""
Domain and API models for the Auth service.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# bcrypt ignores everything past this many bytes of input.
MAX_PASSWORD_BYTES = 72


class UserIdentity(BaseModel):
    """A registered user as stored by the persistence layer.

    Instances are immutable; the service only ever holds copies.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1)
    username: str
    email: str
    role: str
    created_at: datetime


class NewUser(BaseModel):
    """Identity fields supplied at registration, before an id is assigned."""

    model_config = ConfigDict(frozen=True)

    username: str
    email: str
    role: str


class CredentialRecord(BaseModel):
    """A user together with their stored password hash.

    Only returned by the user store to the login path. Never serialized to
    clients, logged, or cached.
    """

    model_config = ConfigDict(frozen=True)

    identity: UserIdentity
    password_hash: str = Field(..., repr=False)

    @property
    def user_id(self) -> int:
        return self.identity.id


class TokenClaims(BaseModel):
    """Verified contents of a bearer token."""

    model_config = ConfigDict(frozen=True)

    subject: int
    role: str
    expires_at: datetime


class DomainEvent(BaseModel):
    """Fire-and-forget notification published to the event bus."""

    topic: str
    payload: Dict[str, Any]
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=128)
    role: Optional[str] = Field(default=None, max_length=32)

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("username may only contain letters, digits, '_', '.' and '-'")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    """Request model for login."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def strip_email(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("email must not be blank")
        return value


class TokenResponse(BaseModel):
    """Response model for a successful login."""

    token: str
    token_type: str = "Bearer"
