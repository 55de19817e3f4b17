"""
Admission pipeline: the per-request sequence from token to upstream response.

Stages run in a fixed order and the first failure produces a terminal
outcome without any upstream call:

1. identity resolution                      401
2. scope, IP and Origin policy              404 / 403
3. request shape (method, path, target)     400
4. service rate limit, then agent limit     429
5. secret resolution                        500
6. forwarding                               upstream status / 502 / 504

Rate limits are charged only for requests that passed stages 1 to 3. The
service counter is charged before the agent counter is consulted; a request
denied by the service limit never touches the agent counter.
"""

from typing import Any, Optional

from shared.errors import AccessLayerException, RateLimitError, ValidationError
from shared.logging import get_logger, set_agent_context
from shared.metrics import MetricsCollector
from ..adapters.secret_injector import SecretInjector
from ..adapters.upstream_client import ForwardingGateway, resolve_target_url
from ..auth.identity import IdentityResolver
from ..models import LEGACY_AGENT_NAME, AgentIdentity, ProxyOutcome, ProxyRequest, ServiceDefinition
from ..policy.enforcer import PolicyEnforcer
from ..policy.validator import RequestShapeValidator
from ..ratelimit.fixed_window import RateWindow


class AdmissionPipeline:
    """Sequences authentication, policy, rate limiting and forwarding."""

    def __init__(
        self,
        identity_resolver: IdentityResolver,
        enforcer: PolicyEnforcer,
        rate_window: Optional[RateWindow] = None,
        injector: Optional[SecretInjector] = None,
        gateway: Optional[ForwardingGateway] = None,
        validator: Optional[RequestShapeValidator] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.identity_resolver = identity_resolver
        self.enforcer = enforcer
        self.rate_window = rate_window if rate_window is not None else RateWindow()
        self.injector = injector if injector is not None else SecretInjector()
        self.gateway = gateway if gateway is not None else ForwardingGateway(self.injector, metrics=metrics)
        self.validator = validator if validator is not None else RequestShapeValidator()
        self.metrics = metrics
        self.logger = get_logger("sentinel.pipeline")

    async def admit(
        self,
        service_name: str,
        token: Optional[str],
        payload: Any,
        client_address: Optional[str],
        origin: Optional[str] = None,
    ) -> ProxyOutcome:
        """Run one proxy request through the pipeline.

        Never raises for client-facing failures; they come back as terminal
        outcomes with an ``{"error": ...}`` body.
        """
        agent_name = LEGACY_AGENT_NAME
        try:
            identity = self.identity_resolver.resolve(token)
            if identity is not None:
                agent_name = identity.name
            set_agent_context(agent_name)

            service = self.enforcer.enforce(service_name, identity, client_address, origin)

            if not isinstance(payload, dict):
                raise ValidationError("Request body must be a JSON object")
            request = ProxyRequest.from_payload(payload)
            method = self.validator.validate(service, request)
            resolve_target_url(service, request.path)

            self._check_rate_limits(service, identity)

            credential = self.injector.resolve(service)
        except AccessLayerException as exc:
            self.logger.warning(
                "Request denied",
                agent=agent_name,
                service=service_name,
                status_code=exc.status_code,
                reason=exc.message,
            )
            outcome = ProxyOutcome.from_error(exc)
            self._record(service_name, outcome)
            return outcome

        try:
            outcome = await self.gateway.forward(service, method, request, credential, agent_name)
        except AccessLayerException as exc:
            outcome = ProxyOutcome.from_error(exc)
        self._record(service_name, outcome)
        return outcome

    def _check_rate_limits(self, service: ServiceDefinition, identity: Optional[AgentIdentity]) -> None:
        if not self.rate_window.allow(service.name, service.rate_limit_per_minute):
            if self.metrics is not None:
                self.metrics.record_rate_limit_hit("service")
            raise RateLimitError(
                f'Rate limit exceeded for service "{service.name}". '
                f"Limit: {service.rate_limit_per_minute}/min"
            )

        if identity is not None and identity.rate_limit_per_minute:
            if not self.rate_window.allow(identity.rate_key, identity.rate_limit_per_minute):
                if self.metrics is not None:
                    self.metrics.record_rate_limit_hit("agent")
                raise RateLimitError(
                    f'Rate limit exceeded for agent "{identity.name}". '
                    f"Limit: {identity.rate_limit_per_minute}/min"
                )

    def _record(self, service_name: str, outcome: ProxyOutcome) -> None:
        if self.metrics is None:
            return
        # Unknown names come from the URL; keep them out of label values.
        label = service_name if service_name in self.enforcer.services else "unknown"
        self.metrics.record_proxy_outcome(label, outcome.status_code, outcome.forwarded)
