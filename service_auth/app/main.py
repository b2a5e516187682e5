"""
Auth service: registration, login and profile lookup over HTTP.
"""

import asyncio
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Path
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.deadline import Deadline
from shared.errors import ValidationError
from shared.logging import set_user_context
from .auth import AuthOrchestrator
from .caching import ProfileCache, RedisProfileCache, create_profile_cache
from .errors import TokenInvalidError
from .events import EventNotifier
from .models import LoginRequest, RegisterRequest, TokenClaims, TokenResponse, UserIdentity
from .persistence import PostgresUserStore
from .security import CredentialHasher, TokenIssuer

SERVICE_NAME = "auth"
DEFAULT_PORT = 8080
DEFAULT_ROLE = "user"
MAX_USER_ID = 2 ** 31 - 1
SHUTDOWN_DRAIN_SECONDS = 5.0

bearer_scheme = HTTPBearer(auto_error=False)


class AuthService(BaseService):
    """Auth service implementation.

    Collaborators are built from configuration unless passed in; tests inject
    fakes for the store, cache and notifier.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store=None,
        cache: Optional[ProfileCache] = None,
        notifier: Optional[EventNotifier] = None,
        hasher: Optional[CredentialHasher] = None,
        tokens: Optional[TokenIssuer] = None,
    ):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config or get_config(SERVICE_NAME, DEFAULT_PORT))

        self.store = store or PostgresUserStore(self.config.database_url, metrics=self.metrics)
        self.hasher = hasher or CredentialHasher(self.config.bcrypt_rounds)
        self.tokens = tokens or TokenIssuer(
            self.config.jwt_secret,
            ttl=timedelta(hours=self.config.jwt_expiry_hours),
        )
        self.notifier = notifier or EventNotifier(
            self.config.kafka_bootstrap,
            connect_timeout=self.config.dependency_connect_timeout_seconds,
        )
        self.cache = cache
        self.orchestrator: Optional[AuthOrchestrator] = None

        self._setup_auth_routes()

    async def start(self):
        """Connect to the database, pick the cache mode and start the notifier."""
        await self.store.start()

        if self.cache is None:
            self.cache = await create_profile_cache(
                self.config.redis_url,
                ttl_seconds=self.config.profile_cache_ttl_seconds,
                connect_timeout=self.config.dependency_connect_timeout_seconds,
            )

        await self.notifier.start()

        self.orchestrator = AuthOrchestrator(
            self.store,
            self.hasher,
            self.tokens,
            self.cache,
            self.notifier,
            metrics=self.metrics,
        )
        self.logger.info(
            "Auth service started",
            cache_mode=self.cache.mode.value,
            event_bus=self.notifier.health()
        )

    async def stop(self):
        """Let pending notifications finish, then release every connection."""
        if self.orchestrator is not None:
            try:
                await asyncio.wait_for(self.orchestrator.drain(), timeout=SHUTDOWN_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                self.logger.warning(
                    "Shutting down with notifications still pending",
                    pending=self.orchestrator.pending_notifications
                )

        await self.notifier.stop()
        if self.cache is not None:
            await self.cache.close()
        await self.store.stop()
        self.logger.info("Auth service stopped")

    def _deadline(self) -> Deadline:
        return Deadline.after(self.config.request_timeout_seconds)

    def _setup_auth_routes(self):
        """Set up auth-specific routes."""

        async def current_claims(
            credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        ) -> TokenClaims:
            if credentials is None:
                raise TokenInvalidError("missing bearer token")
            claims = self.orchestrator.authenticate(credentials.credentials)
            set_user_context(str(claims.subject))
            return claims

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "User Auth Service",
                "version": "1.0.0"
            }

        @self.app.post("/register", status_code=201, response_model=UserIdentity)
        async def register(request: RegisterRequest):
            """Create a user account."""
            role = request.role or DEFAULT_ROLE
            if role not in self.config.allowed_roles:
                raise ValidationError(
                    "validation failed",
                    details={"fields": [{
                        "field": "role",
                        "message": f"role must be one of {', '.join(self.config.allowed_roles)}"
                    }]}
                )

            return await self.orchestrator.register(
                request.username,
                request.email,
                request.password,
                role,
                self._deadline(),
            )

        @self.app.post("/login", response_model=TokenResponse)
        async def login(request: LoginRequest):
            """Exchange email and password for a bearer token."""
            token = await self.orchestrator.login(request.email, request.password, self._deadline())
            return TokenResponse(token=token)

        @self.app.get("/users/{user_id}", response_model=UserIdentity)
        async def get_user(
            user_id: int = Path(..., ge=1, le=MAX_USER_ID),
            claims: TokenClaims = Depends(current_claims),
        ):
            """Get a user's profile. Any valid token may read any profile."""
            return await self.orchestrator.get_profile(user_id, self._deadline())

    async def _check_dependencies(self):
        """Check auth dependencies."""
        dependencies = {}

        try:
            dependencies["postgres"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        if self.cache is None:
            dependencies["cache"] = "not_started"
        elif isinstance(self.cache, RedisProfileCache):
            dependencies["cache"] = "shared" if await self.cache.health_check() else "error"
        else:
            dependencies["cache"] = self.cache.mode.value

        dependencies["event_bus"] = self.notifier.health()
        return dependencies


def create_app():
    """Create FastAPI application."""
    service = AuthService()
    return service.app


if __name__ == "__main__":
    service = AuthService()
    service.run()
