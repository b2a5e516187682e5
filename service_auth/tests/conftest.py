"""
Shared fixtures and fakes for Auth service tests.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from service_auth.app.auth import AuthOrchestrator
from service_auth.app.caching import InMemoryProfileCache
from service_auth.app.errors import DuplicateEmailError, PublishError
from service_auth.app.models import CredentialRecord, NewUser, UserIdentity
from service_auth.app.security import CredentialHasher, TokenIssuer

TEST_SECRET = "test-secret-key-for-hs256-signing-0001"
TEST_BCRYPT_ROUNDS = 4


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))


class FakeUserStore:
    """In-memory UserStore with call counting."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.fail_with: Optional[Exception] = None
        self.started = False
        self.stopped = False
        self.find_by_id_calls = 0
        self._users: Dict[int, Tuple[UserIdentity, str]] = {}
        self._next_id = 1

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    async def health_check(self) -> bool:
        return self.started and not self.stopped

    async def create_user(self, new_user: NewUser, password_hash: str) -> UserIdentity:
        await self._pause()
        if any(user.email == new_user.email for user, _ in self._users.values()):
            raise DuplicateEmailError()

        identity = UserIdentity(
            id=self._next_id,
            username=new_user.username,
            email=new_user.email,
            role=new_user.role,
            created_at=datetime.now(timezone.utc),
        )
        self._users[identity.id] = (identity, password_hash)
        self._next_id += 1
        return identity

    async def find_by_email(self, email: str) -> Optional[CredentialRecord]:
        await self._pause()
        for identity, password_hash in self._users.values():
            if identity.email == email:
                return CredentialRecord(identity=identity, password_hash=password_hash)
        return None

    async def find_by_id(self, user_id: int) -> Optional[UserIdentity]:
        self.find_by_id_calls += 1
        await self._pause()
        entry = self._users.get(user_id)
        return entry[0] if entry else None

    def set_password_hash(self, user_id: int, password_hash: str):
        identity, _ = self._users[user_id]
        self._users[user_id] = (identity, password_hash)

    def __len__(self) -> int:
        return len(self._users)

    async def _pause(self):
        if self.fail_with is not None:
            raise self.fail_with
        if self.delay:
            await asyncio.sleep(self.delay)


class RecordingNotifier:
    """EventNotifier stand-in that records what was published."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[Tuple[str, dict]] = []
        # When set, publish blocks until the event fires.
        self.release: Optional[asyncio.Event] = None
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    def health(self) -> str:
        return "ok" if self.started and not self.stopped else "stopped"

    async def publish(self, topic: str, payload: dict):
        if self.release is not None:
            await self.release.wait()
        if self.fail:
            raise PublishError(topic, "broker unavailable")
        self.published.append((topic, payload))


@pytest.fixture
def metrics():
    return DummyMetrics()


@pytest.fixture
def store():
    return FakeUserStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def hasher():
    return CredentialHasher(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def tokens():
    return TokenIssuer(TEST_SECRET)


@pytest.fixture
def cache():
    return InMemoryProfileCache(ttl_seconds=300)


@pytest.fixture
def orchestrator(store, hasher, tokens, cache, notifier, metrics):
    return AuthOrchestrator(store, hasher, tokens, cache, notifier, metrics=metrics)
