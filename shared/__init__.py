"""
Shared utilities for the Ability Tool Gateway.

This package aggregates common building blocks consumed by the gateway
service and its operator scripts:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application skeleton

Any cross-service logic should live here to avoid import cycles. Do not
import from service_* packages into shared/.
"""
