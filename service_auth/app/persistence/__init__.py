"""
User persistence.

The orchestrator depends only on the UserStore protocol; PostgresUserStore is
the production implementation.
"""

from typing import Optional, Protocol

from ..models import CredentialRecord, NewUser, UserIdentity
from .postgres import PostgresUserStore


class UserStore(Protocol):
    """Narrow persistence capability used by the auth orchestrator."""

    async def create_user(self, new_user: NewUser, password_hash: str) -> UserIdentity:
        ...

    async def find_by_email(self, email: str) -> Optional[CredentialRecord]:
        ...

    async def find_by_id(self, user_id: int) -> Optional[UserIdentity]:
        ...


__all__ = ["UserStore", "PostgresUserStore"]
