"""
Upstream forwarding for the Sentinel gateway.
"""

import asyncio
import json
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from shared.errors import (
    AccessLayerException,
    UpstreamTimeoutError,
    UpstreamTransportError,
    ValidationError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import ProxyOutcome, ProxyRequest, ServiceDefinition
from .secret_injector import Credential, SecretInjector

# Caller headers never forwarded upstream (compared lower-cased).
STRIPPED_HEADERS = frozenset({
    "authorization",
    "cookie",
    "set-cookie",
    "proxy-authorization",
    "x-api-key",
    "host",
    "content-length",
    "transfer-encoding",
})

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

RELAYED_RESPONSE_HEADERS = ("content-type",)


def sanitize_headers(agent_headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Return a copy of the caller headers without stripped or non-string entries."""
    if not agent_headers or not isinstance(agent_headers, Mapping):
        return {}

    clean: Dict[str, str] = {}
    for key, value in agent_headers.items():
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        if key.lower() in STRIPPED_HEADERS:
            continue
        clean[key] = value
    return clean


def resolve_target_url(service: ServiceDefinition, path: str) -> httpx.URL:
    """Join the caller path onto the service base URL.

    The result must stay on one of the service's allowed hosts.
    """
    try:
        url = httpx.URL(service.base_url).join(path)
    except httpx.InvalidURL as exc:
        raise ValidationError(f"Invalid 'path': {exc}") from exc
    if url.scheme != "https" or url.host not in service.allowed_hosts:
        raise ValidationError("Path must be a relative path, not a full URL")
    return url


class ForwardingGateway:
    """Issues the upstream call with a hard deadline and relays the response."""

    def __init__(
        self,
        injector: Optional[SecretInjector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.injector = injector if injector is not None else SecretInjector()
        self.transport = transport
        self.metrics = metrics
        self.logger = get_logger("sentinel.forwarding")
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self.transport, follow_redirects=False)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def build_request(
        self,
        service: ServiceDefinition,
        method: str,
        request: ProxyRequest,
        credential: Credential,
    ) -> httpx.Request:
        """Assemble the outgoing request: sanitized headers, body, credential."""
        url = resolve_target_url(service, request.path)
        headers = httpx.Headers(sanitize_headers(request.headers))

        content: Optional[str] = None
        if request.has_body and method not in BODYLESS_METHODS:
            if isinstance(request.body, str):
                content = request.body
            else:
                content = json.dumps(request.body)
                if "content-type" not in headers:
                    headers["Content-Type"] = "application/json"

        url = self.injector.apply(service, credential, url, headers)

        client = await self._get_client()
        timeout = service.timeout_ms / 1000
        return client.build_request(
            method,
            url,
            headers=headers,
            content=content,
            timeout=httpx.Timeout(timeout),
        )

    async def forward(
        self,
        service: ServiceDefinition,
        method: str,
        request: ProxyRequest,
        credential: Credential,
        agent_name: str,
    ) -> ProxyOutcome:
        """Send the request upstream and classify the result.

        The whole exchange, body included, runs under ``service.timeout_ms``;
        on expiry the in-flight call is cancelled and a 504 is returned.
        Transport failures become a 502. Neither is retried.
        """
        outgoing = await self.build_request(service, method, request, credential)
        client = await self._get_client()
        start = time.monotonic()

        try:
            response = await asyncio.wait_for(
                client.send(outgoing),
                timeout=service.timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error: AccessLayerException = UpstreamTimeoutError(service.timeout_ms)
            self._log_exchange(agent_name, service, method, request.path, start, error=error.message)
            return ProxyOutcome.from_error(error, forwarded=True)
        except httpx.HTTPError as exc:
            description = credential.scrub(str(exc)) or type(exc).__name__
            error = UpstreamTransportError(description)
            self._log_exchange(agent_name, service, method, request.path, start, error=error.message)
            return ProxyOutcome.from_error(error, forwarded=True)

        self._log_exchange(agent_name, service, method, request.path, start, status=response.status_code)

        headers = {
            name: response.headers[name]
            for name in RELAYED_RESPONSE_HEADERS
            if name in response.headers
        }
        return ProxyOutcome(
            status_code=response.status_code,
            body=response.content,
            headers=headers,
            forwarded=True,
        )

    def _log_exchange(
        self,
        agent_name: str,
        service: ServiceDefinition,
        method: str,
        path: str,
        start: float,
        status: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        latency = time.monotonic() - start
        if self.metrics is not None:
            self.metrics.observe_upstream_latency(service.name, latency)

        fields: Dict[str, Any] = {
            "agent": agent_name,
            "service": service.name,
            "method": method,
            "path": path,
            "latency_ms": round(latency * 1000, 2),
        }
        if error is None:
            self.logger.info("Upstream request", status=status, **fields)
        else:
            self.logger.warning("Upstream request failed", error=error, **fields)
