"""
Sentinel gateway service.

Agents call ``POST /v1/proxy/{service}`` with an ``x-agent-token`` header and a
JSON body ``{method, path, headers?, body?}``. The gateway admits or rejects
the call and, once admitted, forwards it with the real upstream credential.
"""

import argparse
import json
import sys
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from fastapi import Request, Response

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ConfigurationError, PayloadTooLargeError
from shared.logging import get_logger
from .adapters.secret_injector import SecretInjector
from .adapters.upstream_client import ForwardingGateway
from .auth.identity import AGENT_TOKEN_HEADER, IdentityResolver
from .domain.pipeline import AdmissionPipeline
from .policy.address import normalize_client_address
from .policy.enforcer import PolicyEnforcer
from .ratelimit.fixed_window import RateWindow
from .registry.loader import GatewayConfig, load_gateway_config
from .registry.tokens import generate_token


class SentinelService(BaseService):
    """Credential-isolating gateway service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        gateway_config: Optional[GatewayConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        environ: Optional[Mapping[str, str]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        super().__init__("sentinel", config)

        self.gateway_config = gateway_config or load_gateway_config(
            self.config.services_config_path,
            self.config.agents_config_path,
            self.config.agent_token,
        )

        self.identity_resolver = IdentityResolver(
            self.gateway_config.agents_by_token,
            legacy_token=self.gateway_config.legacy_token,
        )
        self.enforcer = PolicyEnforcer(self.gateway_config.services, self.gateway_config.global_policy)
        self.rate_window = RateWindow(clock=clock)
        self.injector = SecretInjector(environ)
        self.forwarding = ForwardingGateway(self.injector, transport=transport, metrics=self.metrics)
        self.pipeline = AdmissionPipeline(
            identity_resolver=self.identity_resolver,
            enforcer=self.enforcer,
            rate_window=self.rate_window,
            injector=self.injector,
            gateway=self.forwarding,
            metrics=self.metrics,
        )

        self.logger.info(
            "Sentinel configured",
            services=sorted(self.gateway_config.services),
            auth_mode=self.gateway_config.auth_mode,
        )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.forwarding.close()

        self._setup_proxy_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.sentinel_service = self

    def _get_client_ip(self, request: Request) -> Optional[str]:
        """Extract the caller IP, honouring proxy headers when trusted."""
        if self.config.trust_proxy:
            forwarded_for = request.headers.get("X-Forwarded-For")
            if forwarded_for:
                return normalize_client_address(forwarded_for.split(",")[0])
            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return normalize_client_address(real_ip)
        if request.client:
            return normalize_client_address(request.client.host)
        return None

    async def _read_payload(self, request: Request) -> Any:
        """Read the JSON body under the size cap; None when it is not JSON."""
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.config.max_body_bytes:
            raise PayloadTooLargeError(f"Request body exceeds {self.config.max_body_bytes} bytes")

        raw = await request.body()
        if len(raw) > self.config.max_body_bytes:
            raise PayloadTooLargeError(f"Request body exceeds {self.config.max_body_bytes} bytes")
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def _setup_proxy_routes(self):
        """Set up the proxy route."""

        @self.app.post("/v1/proxy/{service_name}")
        async def proxy(service_name: str, request: Request):
            """Admit and forward one agent request."""
            payload = await self._read_payload(request)
            outcome = await self.pipeline.admit(
                service_name,
                token=request.headers.get(AGENT_TOKEN_HEADER),
                payload=payload,
                client_address=self._get_client_ip(request),
                origin=request.headers.get("origin") or request.headers.get("referer"),
            )
            return Response(
                content=outcome.body,
                status_code=outcome.status_code,
                headers=outcome.headers,
            )

    def _health_details(self) -> Dict[str, Any]:
        return {
            "services": sorted(self.gateway_config.services),
            "auth_mode": self.gateway_config.auth_mode,
        }


def create_app():
    """Create FastAPI application. Raises ConfigurationError on bad config."""
    service = SentinelService()
    return service.app


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="sentinel", description="Credential-isolating request gateway")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the gateway (default)")
    subparsers.add_parser("generate-token", help="Print a new agent token")
    args = parser.parse_args(argv)

    if args.command == "generate-token":
        print(generate_token())
        return 0

    try:
        service = SentinelService(get_config("sentinel"))
    except ConfigurationError as e:
        get_logger("sentinel.main").error("Failed to load configuration", error=e.message)
        print(f"FATAL: {e.message}", file=sys.stderr)
        return 1

    service.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
