"""
Gateway token to caller identity resolution.
"""

import hmac
from typing import Mapping, Optional

from shared.errors import AuthenticationError, ConfigurationError
from shared.logging import get_logger
from ..models import AgentIdentity

AGENT_TOKEN_HEADER = "x-agent-token"


class IdentityResolver:
    """Maps a presented gateway token to an agent identity.

    With an agent table, every token must belong to a configured agent. Without
    one the gateway runs in single-token mode: the token is compared with one
    process-wide value and the caller is the anonymous legacy identity, which
    is represented as ``None``.
    """

    def __init__(self, agents_by_token: Optional[Mapping[str, AgentIdentity]], legacy_token: Optional[str] = None):
        self.agents_by_token = agents_by_token
        self.legacy_token = legacy_token
        self.logger = get_logger("sentinel.identity")

    @property
    def mode(self) -> str:
        return "agents" if self.agents_by_token is not None else "legacy"

    def resolve(self, token: Optional[str]) -> Optional[AgentIdentity]:
        """Return the identity for ``token`` or raise AuthenticationError."""
        if not token or not isinstance(token, str):
            raise AuthenticationError(f"Unauthorized: missing {AGENT_TOKEN_HEADER}")

        if self.agents_by_token is not None:
            identity = self.agents_by_token.get(token)
            if identity is None:
                self.logger.warning("Unknown agent token presented")
                raise AuthenticationError("Unauthorized: invalid agent token")
            return identity

        if not self.legacy_token:
            raise ConfigurationError("Server misconfigured: AGENT_TOKEN not set")

        if not hmac.compare_digest(token.encode("utf-8"), self.legacy_token.encode("utf-8")):
            self.logger.warning("Invalid shared token presented")
            raise AuthenticationError(f"Unauthorized: invalid or missing {AGENT_TOKEN_HEADER}")

        return None
