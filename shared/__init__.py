"""
Shared utilities for the Sentinel gateway.

Common building blocks consumed by the service package:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and agent correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application scaffold (health, metrics, handlers)

Do not import from service_* packages into shared/.
"""
