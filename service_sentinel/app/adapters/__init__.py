"""
Adapters package for the Sentinel gateway.

Contains the outbound side of the proxy:

- secret_injector: resolves real credentials from the environment and
  places them on the outgoing request
- upstream_client: header sanitizing, URL resolution and the deadline-bound
  httpx call to the upstream service

Secrets handled here never reach logs, metrics or error messages.
"""

from .secret_injector import Credential, SecretInjector, render_template
from .upstream_client import (
    STRIPPED_HEADERS,
    ForwardingGateway,
    resolve_target_url,
    sanitize_headers,
)

__all__ = [
    "Credential",
    "ForwardingGateway",
    "STRIPPED_HEADERS",
    "SecretInjector",
    "render_template",
    "resolve_target_url",
    "sanitize_headers",
]
