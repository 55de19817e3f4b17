"""
Read-only registry of service and agent definitions.

Definitions are loaded once at startup from YAML files and handed to the
admission pipeline as immutable lookup tables.
"""

from .loader import (
    GatewayConfig,
    build_agent_token_map,
    build_gateway_config,
    load_agents,
    load_gateway_config,
    load_services,
    parse_agents,
    parse_services,
)
from .tokens import generate_token, is_valid_token_format

__all__ = [
    "GatewayConfig",
    "build_agent_token_map",
    "build_gateway_config",
    "generate_token",
    "is_valid_token_format",
    "load_agents",
    "load_gateway_config",
    "load_services",
    "parse_agents",
    "parse_services",
]
