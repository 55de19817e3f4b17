"""
Shared fixtures for Sentinel gateway tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import pytest

from service_sentinel.app.models import AgentIdentity, GlobalPolicy, ServiceDefinition
from service_sentinel.app.registry.loader import build_gateway_config
from service_sentinel.app.registry.tokens import generate_token


class FakeClock:
    """Millisecond clock driven by the test."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeUpstream:
    """Records outgoing requests and answers them, optionally slowly."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.json_body: Any = {"ok": True}
        self.extra_headers: Dict[str, str] = {}
        self.delay: Optional[float] = None
        self.error: Optional[Exception] = None
        self.cancelled = False
        self.completed = False

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        self.completed = True
        return httpx.Response(self.status_code, json=self.json_body, headers=self.extra_headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


def _service_data(name: str, **overrides) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": name,
        "base_url": f"https://api.{name}.test/v1",
        "allowed_hosts": [f"api.{name}.test"],
        "auth": {"type": "header", "header_name": "Authorization", "template": "Bearer ${SECRET}"},
        "secret_env": f"{name.upper()}_API_KEY",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_service():
    """Factory for ServiceDefinition with sensible defaults."""
    def _make(name: str = "openai", **overrides) -> ServiceDefinition:
        return ServiceDefinition(**_service_data(name, **overrides))
    return _make


@pytest.fixture
def make_agent():
    """Factory for AgentIdentity with a freshly generated token."""
    def _make(name: str = "a1", allowed_services=("openai",), **overrides) -> AgentIdentity:
        data: Dict[str, Any] = {
            "name": name,
            "token": generate_token(),
            "allowed_services": list(allowed_services),
        }
        data.update(overrides)
        return AgentIdentity(**data)
    return _make


@pytest.fixture
def services(make_service):
    """Three services covering header and query injection."""
    return {
        "openai": make_service("openai", allowed_methods=["POST"], rate_limit_per_minute=2),
        "stripe": make_service("stripe"),
        "maps": make_service(
            "maps",
            auth={"type": "query", "query_param": "key", "template": "${SECRET}"},
            allowed_path_prefixes=["/geocode"],
        ),
    }


@pytest.fixture
def agent(make_agent):
    return make_agent("a1", allowed_services=("openai", "maps"))


@pytest.fixture
def gateway_config(services, agent):
    return build_gateway_config(services, GlobalPolicy(), {agent.name: agent})


@pytest.fixture
def environ():
    return {
        "OPENAI_API_KEY": "sk-test-openai-0123456789",
        "STRIPE_API_KEY": "sk_live_stripe_abcdef",
        "MAPS_API_KEY": "maps-key-42",
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeUpstream()
