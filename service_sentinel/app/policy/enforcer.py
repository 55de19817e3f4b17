"""
Ordered admission policy for one proxy request.

Checks run in a fixed order and the first failure wins:

1. the target service exists
2. the identity (if any) is scoped to the service
3. the client address passes the effective IP allowlist
4. the client address passes the identity's own IP allowlist
5. the Origin (or Referer) passes the effective Origin allowlist

Service-level allowlists replace the global ones, they are never merged.
The identity IP list bounds the caller rather than the destination, so it is
checked in addition to the effective list.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from shared.errors import AuthorizationError, NotFoundError
from ..models import AgentIdentity, GlobalPolicy, ServiceDefinition
from .address import matches_any, parse_address


@dataclass(frozen=True)
class EffectivePolicy:
    """Allowlists that apply to one service after override resolution."""

    allowed_ips: Optional[Tuple[str, ...]] = None
    allowed_origins: Optional[Tuple[str, ...]] = None


def resolve_effective_policy(service: ServiceDefinition, global_policy: GlobalPolicy) -> EffectivePolicy:
    """Service lists win when declared; otherwise fall back to the global lists."""
    allowed_ips = service.allowed_ips if service.allowed_ips is not None else global_policy.allowed_ips
    allowed_origins = (
        service.allowed_origins if service.allowed_origins is not None else global_policy.allowed_origins
    )
    return EffectivePolicy(allowed_ips=allowed_ips, allowed_origins=allowed_origins)


class PolicyEnforcer:
    """Evaluates scope, network and origin policy for proxy requests."""

    def __init__(self, services: Mapping[str, ServiceDefinition], global_policy: Optional[GlobalPolicy] = None):
        self.services = services
        self.global_policy = global_policy if global_policy is not None else GlobalPolicy()

    def enforce(
        self,
        service_name: str,
        identity: Optional[AgentIdentity],
        client_address: Optional[str],
        origin: Optional[str] = None,
    ) -> ServiceDefinition:
        """Return the target service or raise the first policy violation."""
        service = self.services.get(service_name)
        if service is None:
            available = sorted(self.services)
            raise NotFoundError(
                f'Unknown service: "{service_name}". Available: {", ".join(available)}',
                details={"available": available},
            )

        if identity is not None and service_name not in identity.allowed_services:
            raise AuthorizationError(
                f'Agent "{identity.name}" is not authorized for service "{service_name}"'
            )

        policy = resolve_effective_policy(service, self.global_policy)

        if policy.allowed_ips:
            self._check_ip(client_address, policy.allowed_ips, f'service "{service_name}"')

        if identity is not None and identity.allowed_ips:
            self._check_ip(client_address, identity.allowed_ips, f'agent "{identity.name}"')

        if policy.allowed_origins:
            self._check_origin(origin, policy.allowed_origins, service_name)

        return service

    def _check_ip(self, client_address: Optional[str], allowed: Tuple[str, ...], subject: str) -> None:
        if client_address is None or parse_address(client_address) is None:
            raise AuthorizationError(f"Client IP could not be determined; {subject} requires an IP allowlist match")

        if not matches_any(client_address, allowed):
            raise AuthorizationError(f'Client IP "{client_address}" is not in the allowlist for {subject}')

    def _check_origin(self, origin: Optional[str], allowed: Tuple[str, ...], service_name: str) -> None:
        if not origin:
            raise AuthorizationError(f'Origin or Referer header required for service "{service_name}"')

        candidate = origin.rstrip("/")
        if not any(candidate == entry.rstrip("/") for entry in allowed):
            raise AuthorizationError(f'Origin "{candidate}" is not allowed for service "{service_name}"')
