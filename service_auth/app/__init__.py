"""
Auth Service application package.

- app.main: FastAPI entrypoint that wires routes and lifecycle.
- app.auth: Register / Login / GetProfile orchestration.
- app.security: Password hashing and bearer tokens.
- app.caching: Profile cache in shared (Redis) or degraded (in-process) mode.
- app.events: Best-effort domain event publishing to Kafka.
- app.persistence: PostgreSQL user store.

Module import must not perform network calls. All IO happens in route
handlers or the explicit startup hook.
"""
