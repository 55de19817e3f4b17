"""
Authentication helpers for the Sentinel gateway.
"""

from .identity import AGENT_TOKEN_HEADER, IdentityResolver

__all__ = [
    "AGENT_TOKEN_HEADER",
    "IdentityResolver",
]
