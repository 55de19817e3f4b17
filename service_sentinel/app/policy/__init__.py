"""
Admission policy for the Sentinel gateway.

- address: exact and CIDR allowlist matching for IPv4 and IPv6
- validator: method and path shape checks per service
- enforcer: ordered scope, IP and Origin checks
"""

from .address import matches, matches_any
from .enforcer import EffectivePolicy, PolicyEnforcer, resolve_effective_policy
from .validator import RequestShapeValidator

__all__ = [
    "EffectivePolicy",
    "PolicyEnforcer",
    "RequestShapeValidator",
    "matches",
    "matches_any",
    "resolve_effective_policy",
]
