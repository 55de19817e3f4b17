"""
Data models for the Sentinel gateway.

Service and agent definitions are loaded once at startup and are immutable
afterwards (frozen pydantic models). Per-request values are plain dataclasses.
"""

import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

from shared.errors import AccessLayerException

SECRET_PLACEHOLDER = "${SECRET}"
DEFAULT_TIMEOUT_MS = 30_000
TOKEN_PREFIX = "agt_"
LEGACY_AGENT_NAME = "legacy"


class HeaderAuth(BaseModel):
    """Credential rendered into a request header."""

    model_config = ConfigDict(frozen=True)

    type: Literal["header"]
    header_name: str = Field(min_length=1)
    template: str = Field(min_length=1)


class QueryAuth(BaseModel):
    """Credential rendered into a URL query parameter."""

    model_config = ConfigDict(frozen=True)

    type: Literal["query"]
    query_param: str = Field(min_length=1)
    template: str = Field(min_length=1)


AuthInjection = Annotated[Union[HeaderAuth, QueryAuth], Field(discriminator="type")]


class ServiceDefinition(BaseModel):
    """A named upstream API and the policy guarding it."""

    model_config = ConfigDict(frozen=True)

    name: str
    base_url: str
    allowed_hosts: Tuple[str, ...] = Field(min_length=1)
    auth: AuthInjection
    secret_env: str = Field(min_length=1)
    allowed_methods: Optional[Tuple[str, ...]] = None
    allowed_path_prefixes: Optional[Tuple[str, ...]] = None
    rate_limit_per_minute: Optional[int] = None
    allowed_ips: Optional[Tuple[str, ...]] = None
    allowed_origins: Optional[Tuple[str, ...]] = None
    timeout_ms: PositiveInt = DEFAULT_TIMEOUT_MS

    @field_validator("base_url")
    @classmethod
    def _require_https(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError(f'base_url must use https (got "{value}")')
        return value

    @field_validator("allowed_path_prefixes")
    @classmethod
    def _prefixes_are_absolute(cls, value: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
        if value is not None:
            for prefix in value:
                if not prefix.startswith("/"):
                    raise ValueError('allowed_path_prefixes entries must start with "/"')
        return value

    @model_validator(mode="after")
    def _check_invariants(self) -> "ServiceDefinition":
        host = httpx.URL(self.base_url).host
        if host not in self.allowed_hosts:
            raise ValueError(f'base_url host "{host}" must be in allowed_hosts')
        if SECRET_PLACEHOLDER not in self.auth.template:
            raise ValueError("auth.template must contain ${SECRET} placeholder")
        return self


class AgentIdentity(BaseModel):
    """A scoped caller credential."""

    model_config = ConfigDict(frozen=True)

    name: str
    token: str
    allowed_services: Tuple[str, ...] = Field(min_length=1)
    rate_limit_per_minute: Optional[PositiveInt] = None
    allowed_ips: Optional[Tuple[str, ...]] = None

    @field_validator("token")
    @classmethod
    def _require_prefix(cls, value: str) -> str:
        if not value.startswith(TOKEN_PREFIX):
            raise ValueError(f'token must start with "{TOKEN_PREFIX}"')
        return value

    @property
    def rate_key(self) -> str:
        return f"agent:{self.name}"

    def __repr__(self) -> str:
        # Keep the token out of reprs that end up in tracebacks.
        return f"AgentIdentity(name={self.name!r}, allowed_services={self.allowed_services!r})"


class GlobalPolicy(BaseModel):
    """Allowlists applied to services that do not declare their own."""

    model_config = ConfigDict(frozen=True)

    allowed_ips: Optional[Tuple[str, ...]] = None
    allowed_origins: Optional[Tuple[str, ...]] = None


@dataclass
class ProxyRequest:
    """The JSON body an agent posts to ``/v1/proxy/{service}``.

    Values are kept as received; shape checks happen in the request validator.
    """

    method: Any = None
    path: Any = None
    headers: Optional[Dict[str, Any]] = None
    body: Any = None
    has_body: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProxyRequest":
        headers = payload.get("headers")
        return cls(
            method=payload.get("method"),
            path=payload.get("path"),
            headers=headers if isinstance(headers, dict) else None,
            body=payload.get("body"),
            has_body="body" in payload and payload["body"] is not None,
        )


@dataclass
class ProxyOutcome:
    """Either a relayed upstream response or a terminal admission decision."""

    status_code: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    forwarded: bool = False
    error: Optional[str] = None

    @classmethod
    def from_error(cls, exc: AccessLayerException, forwarded: bool = False) -> "ProxyOutcome":
        return cls(
            status_code=exc.status_code,
            body=json.dumps(exc.to_response()).encode("utf-8"),
            headers={"content-type": "application/json"},
            forwarded=forwarded,
            error=exc.message,
        )
