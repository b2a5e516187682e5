"""
Shared utilities for the User Auth Service.

This package aggregates the building blocks the service layers sit on:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- deadline: Per-request deadlines for external calls
- base_service: FastAPI application skeleton with health and metrics routes

Do not import from service packages into shared/.
"""
