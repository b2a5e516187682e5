"""
PostgreSQL user store for the Auth service.
"""

import time
from contextlib import contextmanager
from typing import Optional, TYPE_CHECKING

import asyncpg

from shared.logging import get_logger
from ..errors import DuplicateEmailError, PersistenceError
from ..models import CredentialRecord, NewUser, UserIdentity

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PostgresUserStore:
    """asyncpg-backed implementation of UserStore."""

    def __init__(
        self,
        dsn: str,
        *,
        metrics: Optional["MetricsCollector"] = None,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30,
    ):
        self.dsn = dsn
        self.metrics = metrics
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("auth.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the connection pool and make sure the users table exists."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            await self._create_tables()
        except _DRIVER_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL user store", error=str(e))
            raise PersistenceError(f"failed to connect to database: {e}", operation="start") from e

        self.logger.info("PostgreSQL user store started")

    async def stop(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL user store stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id SERIAL PRIMARY KEY,
                    username TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)

    async def create_user(self, new_user: NewUser, password_hash: str) -> UserIdentity:
        """Insert a user row and return the stored identity.

        Raises:
            DuplicateEmailError: if the email is already registered.
            PersistenceError: for any other database failure.
        """
        pool = self._require_pool("create_user")
        try:
            with self._observe("create_user"):
                row = await pool.fetchrow(
                    """
                    INSERT INTO users (username, email, password_hash, role)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id, username, email, role, created_at
                    """,
                    new_user.username,
                    new_user.email,
                    password_hash,
                    new_user.role,
                )
        except asyncpg.UniqueViolationError:
            raise DuplicateEmailError() from None
        except _DRIVER_ERRORS as e:
            self.logger.error("Failed to create user", error=str(e))
            raise PersistenceError(str(e), operation="create_user") from e

        return self._to_identity(row)

    async def find_by_email(self, email: str) -> Optional[CredentialRecord]:
        """Return the user and password hash for ``email``, or None."""
        pool = self._require_pool("find_by_email")
        try:
            with self._observe("find_by_email"):
                row = await pool.fetchrow(
                    """
                    SELECT id, username, email, password_hash, role, created_at
                    FROM users
                    WHERE email = $1
                    """,
                    email,
                )
        except _DRIVER_ERRORS as e:
            self.logger.error("Failed to look up user by email", error=str(e))
            raise PersistenceError(str(e), operation="find_by_email") from e

        if row is None:
            return None
        return CredentialRecord(identity=self._to_identity(row), password_hash=row["password_hash"])

    async def find_by_id(self, user_id: int) -> Optional[UserIdentity]:
        """Return the user with ``user_id``, or None."""
        pool = self._require_pool("find_by_id")
        try:
            with self._observe("find_by_id"):
                row = await pool.fetchrow(
                    """
                    SELECT id, username, email, role, created_at
                    FROM users
                    WHERE id = $1
                    """,
                    user_id,
                )
        except _DRIVER_ERRORS as e:
            self.logger.error("Failed to look up user by id", user_id=user_id, error=str(e))
            raise PersistenceError(str(e), operation="find_by_id") from e

        return self._to_identity(row) if row is not None else None

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False

    def _require_pool(self, operation: str) -> asyncpg.Pool:
        if self.pool is None:
            raise PersistenceError("user store not started", operation=operation)
        return self.pool

    @contextmanager
    def _observe(self, query: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "db_query_duration_seconds", time.perf_counter() - start, query=query
                )

    @staticmethod
    def _to_identity(row) -> UserIdentity:
        return UserIdentity(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            role=row["role"],
            created_at=row["created_at"],
        )
