"""
Shared utilities for the Assistant Bridge.

This package aggregates common building blocks consumed by the services:

- config: Settings via pydantic-settings (database > env > .env > defaults)
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators and backoff delays
- base_service: FastAPI service shell (health, metrics, error handlers)

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service packages into shared/.
"""
