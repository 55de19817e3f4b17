"""
Loading and validation of service and agent definitions.

``services.yaml`` holds a top-level ``services`` map plus optional global
``allowed_ips`` / ``allowed_origins``. ``agents.yaml`` is optional and holds a
top-level ``agents`` map; without it the gateway runs in single-token mode.
Every violation raises ConfigurationError so that startup fails fast instead
of serving with a partial policy set.
"""

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from shared.errors import ConfigurationError
from shared.logging import get_logger
from ..models import AgentIdentity, GlobalPolicy, ServiceDefinition
from .tokens import is_valid_token_format

logger = get_logger("sentinel.registry")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class GatewayConfig:
    """Read-only view of everything the admission pipeline consults."""

    services: Mapping[str, ServiceDefinition]
    global_policy: GlobalPolicy
    agents_by_token: Optional[Mapping[str, AgentIdentity]] = None
    legacy_token: Optional[str] = None

    @property
    def auth_mode(self) -> str:
        return "agents" if self.agents_by_token is not None else "legacy"


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e


def parse_services(document: Any) -> Tuple[Dict[str, ServiceDefinition], GlobalPolicy]:
    """Validate a parsed ``services.yaml`` document."""
    if not isinstance(document, dict) or not isinstance(document.get("services"), dict):
        raise ConfigurationError("Config must have a top-level 'services' map")

    try:
        global_policy = GlobalPolicy(
            allowed_ips=document.get("allowed_ips"),
            allowed_origins=document.get("allowed_origins"),
        )
    except PydanticValidationError as e:
        raise ConfigurationError(f"Global allowlists: {_describe(e)}") from e

    services: Dict[str, ServiceDefinition] = {}
    for name, raw in document["services"].items():
        if not isinstance(raw, dict):
            raise ConfigurationError(f'Service "{name}" must be a mapping')
        try:
            services[str(name)] = ServiceDefinition(name=str(name), **raw)
        except PydanticValidationError as e:
            raise ConfigurationError(f'Service "{name}": {_describe(e)}') from e
        except TypeError as e:
            raise ConfigurationError(f'Service "{name}": {e}') from e

    return services, global_policy


def parse_agents(document: Any) -> Dict[str, AgentIdentity]:
    """Validate a parsed ``agents.yaml`` document, keyed by agent name."""
    if not isinstance(document, dict) or not isinstance(document.get("agents"), dict):
        raise ConfigurationError("agents.yaml must have a top-level 'agents' map")

    agents: Dict[str, AgentIdentity] = {}
    for name, raw in document["agents"].items():
        if not isinstance(raw, dict):
            raise ConfigurationError(f'Agent "{name}" must be a mapping')
        try:
            agents[str(name)] = AgentIdentity(name=str(name), **raw)
        except PydanticValidationError as e:
            raise ConfigurationError(f'Agent "{name}": {_describe(e)}') from e
        except TypeError as e:
            raise ConfigurationError(f'Agent "{name}": {e}') from e
        if not is_valid_token_format(agents[str(name)].token):
            logger.warning("Agent token was not produced by generate_token", agent=str(name))

    return agents


def build_agent_token_map(agents: Mapping[str, AgentIdentity]) -> Dict[str, AgentIdentity]:
    """Index agents by token, rejecting tokens shared by two agents."""
    by_token: Dict[str, AgentIdentity] = {}
    for name, agent in agents.items():
        existing = by_token.get(agent.token)
        if existing is not None:
            raise ConfigurationError(
                f'Duplicate agent token: agents "{existing.name}" and "{name}" share the same token'
            )
        by_token[agent.token] = agent
    return by_token


def check_agent_scopes(agents: Mapping[str, AgentIdentity], services: Mapping[str, ServiceDefinition]) -> None:
    """Every service an agent is scoped to must be configured."""
    for name, agent in agents.items():
        for service_name in agent.allowed_services:
            if service_name not in services:
                raise ConfigurationError(
                    f'Agent "{name}" references unknown service "{service_name}". '
                    f'Available: {", ".join(sorted(services))}'
                )


def load_services(path: PathLike) -> Tuple[Dict[str, ServiceDefinition], GlobalPolicy]:
    """Load ``services.yaml``; a missing file is fatal."""
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise ConfigurationError(f"Config file not found: {resolved}")
    return parse_services(_read_yaml(resolved))


def load_agents(path: PathLike) -> Optional[Dict[str, AgentIdentity]]:
    """Load ``agents.yaml``; None when the file does not exist."""
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        return None
    return parse_agents(_read_yaml(resolved))


def build_gateway_config(
    services: Dict[str, ServiceDefinition],
    global_policy: GlobalPolicy,
    agents: Optional[Mapping[str, AgentIdentity]],
    legacy_token: Optional[str] = None,
) -> GatewayConfig:
    """Cross-validate definitions and freeze them into a GatewayConfig."""
    agents_by_token: Optional[Mapping[str, AgentIdentity]] = None
    if agents is not None:
        check_agent_scopes(agents, services)
        agents_by_token = MappingProxyType(build_agent_token_map(agents))
    elif not legacy_token:
        raise ConfigurationError("AGENT_TOKEN environment variable is required (no agents.yaml found)")

    return GatewayConfig(
        services=MappingProxyType(dict(services)),
        global_policy=global_policy,
        agents_by_token=agents_by_token,
        legacy_token=legacy_token if agents is None else None,
    )


def load_gateway_config(
    services_path: PathLike,
    agents_path: PathLike,
    legacy_token: Optional[str] = None,
) -> GatewayConfig:
    """Load both definition files and return the frozen configuration."""
    services, global_policy = load_services(services_path)
    agents = load_agents(agents_path)
    config = build_gateway_config(services, global_policy, agents, legacy_token)

    logger.info(
        "Gateway configuration loaded",
        services=sorted(config.services),
        auth_mode=config.auth_mode,
        agent_count=len(config.agents_by_token or {}),
    )
    return config
