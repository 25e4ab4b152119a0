"""
Shared utilities for the Player Cache service.

This package aggregates common building blocks consumed by service packages:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application shell, health and lifecycle

Do not import from service packages into shared/.
"""
