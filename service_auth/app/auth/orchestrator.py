"""
Register / Login / GetProfile for the Auth service.

The orchestrator composes the credential hasher, token issuer, user store,
profile cache and event notifier. Persistence and hashing failures propagate
to the caller; cache and notification failures are absorbed here and never
change what the caller observes.
"""

import asyncio
import secrets
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Optional, Set, TYPE_CHECKING

from shared.deadline import Deadline, bounded
from shared.errors import ServiceException
from shared.logging import get_logger
from ..caching.profile_cache import ProfileCache, profile_key
from ..errors import (
    EmptyCredentialError,
    InvalidCredentialsError,
    UserNotFoundError,
    VerificationError,
)
from ..events.notifier import USER_REGISTERED_TOPIC, EventNotifier
from ..models import NewUser, TokenClaims, UserIdentity
from ..persistence import UserStore
from ..security.hasher import CredentialHasher
from ..security.tokens import TokenIssuer

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class AuthOrchestrator:
    """Entry point for the three auth operations.

    Every operation accepts an optional Deadline; each call to the store,
    cache or event bus waits at most the time left on it.
    """

    def __init__(
        self,
        store: UserStore,
        hasher: CredentialHasher,
        tokens: TokenIssuer,
        cache: ProfileCache,
        notifier: EventNotifier,
        *,
        metrics: Optional["MetricsCollector"] = None,
        token_ttl: Optional[timedelta] = None,
    ):
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.cache = cache
        self.notifier = notifier
        self.metrics = metrics
        self.token_ttl = token_ttl
        self.logger = get_logger("auth.orchestrator")

        self._pending: Set[asyncio.Task] = set()
        self._decoy_hash: Optional[str] = None

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role: str,
        deadline: Optional[Deadline] = None,
    ) -> UserIdentity:
        """Create a user and announce it on the event bus.

        Raises:
            EmptyCredentialError: if ``password`` is empty.
            PasswordTooLongError: if ``password`` is over 72 bytes of UTF-8.
            HashingError: if the password cannot be hashed.
            DuplicateEmailError: if ``email`` is already registered.
            PersistenceError: for other store failures.
            OperationTimeoutError: if the deadline passes.
        """
        with self._operation("register"):
            if not password:
                raise EmptyCredentialError()

            password_hash = await self.hasher.hash(password)
            created = await bounded(
                self.store.create_user(NewUser(username=username, email=email, role=role), password_hash),
                deadline,
                "create_user",
            )

            self.logger.info("User registered", user_id=created.id, role=created.role)
            self._spawn_notification(
                USER_REGISTERED_TOPIC,
                {"id": created.id, "email": created.email},
            )
            return created

    async def login(self, email: str, password: str, deadline: Optional[Deadline] = None) -> str:
        """Check credentials and return a signed bearer token.

        An unknown email and a wrong password raise the same
        InvalidCredentialsError so callers cannot probe for accounts.
        """
        with self._operation("login"):
            record = await bounded(self.store.find_by_email(email), deadline, "find_by_email")

            if record is None:
                # Spend the same bcrypt time as a real check.
                await self.hasher.verify(password, await self._get_decoy_hash())
                self.logger.info("Login rejected", reason="unknown_email")
                raise InvalidCredentialsError()

            try:
                matches = await self.hasher.verify(password, record.password_hash)
            except VerificationError:
                self.logger.error("Login rejected", reason="malformed_stored_hash", user_id=record.user_id)
                raise InvalidCredentialsError() from None

            if not matches:
                self.logger.info("Login rejected", reason="password_mismatch", user_id=record.user_id)
                raise InvalidCredentialsError()

            token = self.tokens.issue(record.identity.id, record.identity.role, self.token_ttl)
            self.logger.info("Token issued", user_id=record.user_id, role=record.identity.role)
            return token

    async def get_profile(self, user_id: int, deadline: Optional[Deadline] = None) -> UserIdentity:
        """Return a user's profile, served from cache when possible.

        Raises:
            UserNotFoundError: if no such user exists.
            PersistenceError: for store failures.
            OperationTimeoutError: if the deadline passes.
        """
        with self._operation("get_profile"):
            key = profile_key(user_id)

            cached = await self._cache_get(key, deadline)
            if cached is not None:
                return cached

            user = await bounded(self.store.find_by_id(user_id), deadline, "find_by_id")
            if user is None:
                raise UserNotFoundError(user_id)

            await self._cache_put(key, user, deadline)
            return user

    def authenticate(self, token: str) -> TokenClaims:
        """Verify a bearer token presented on a request."""
        return self.tokens.verify(token)

    async def drain(self) -> None:
        """Wait for outstanding event notifications to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_notifications(self) -> int:
        return len(self._pending)

    async def _cache_get(self, key: str, deadline: Optional[Deadline]) -> Optional[UserIdentity]:
        try:
            value, found = await bounded(self.cache.get(key), deadline, "cache_get")
        except Exception as e:
            self.logger.warning("Profile cache read failed", key=key, error=str(e))
            self._count("profile_cache_requests_total", mode=self.cache.mode.value, result="error")
            self._count("degraded_failures_total", component="profile_cache")
            return None

        self._count("profile_cache_requests_total", mode=self.cache.mode.value, result="hit" if found else "miss")
        return value if found else None

    async def _cache_put(self, key: str, value: UserIdentity, deadline: Optional[Deadline]) -> None:
        try:
            await bounded(self.cache.put(key, value), deadline, "cache_put")
        except Exception as e:
            self.logger.warning("Profile cache write failed", key=key, error=str(e))
            self._count("degraded_failures_total", component="profile_cache")

    def _spawn_notification(self, topic: str, payload: Dict[str, Any]) -> None:
        # Independent task: cancelling the request must not cancel it.
        task = asyncio.create_task(self._notify(topic, payload), name=f"notify:{topic}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            await self.notifier.publish(topic, payload)
        except Exception as e:
            self.logger.warning("Event publish failed", topic=topic, error=str(e))
            self._count("degraded_failures_total", component="event_notifier")

    async def _get_decoy_hash(self) -> str:
        if self._decoy_hash is None:
            self._decoy_hash = await self.hasher.hash(secrets.token_urlsafe(16))
        return self._decoy_hash

    @contextmanager
    def _operation(self, name: str):
        start = time.perf_counter()
        outcome = "success"
        try:
            yield
        except ServiceException as e:
            outcome = e.code.lower()
            raise
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except Exception:
            outcome = "internal_error"
            raise
        finally:
            self._count("auth_operations_total", operation=name, outcome=outcome)
            if self.metrics:
                self.metrics.observe_histogram(
                    "auth_operation_duration_seconds", time.perf_counter() - start, operation=name
                )

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)
