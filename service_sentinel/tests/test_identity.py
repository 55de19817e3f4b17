"""
Unit tests for gateway token resolution.
"""

import pytest

from service_sentinel.app.auth.identity import IdentityResolver
from shared.errors import AuthenticationError, ConfigurationError


class TestAgentMode:
    """Resolution against a configured agent table."""

    @pytest.fixture
    def resolver(self, agent):
        return IdentityResolver({agent.token: agent})

    def test_known_token(self, resolver, agent):
        assert resolver.mode == "agents"
        assert resolver.resolve(agent.token) is agent

    def test_missing_token(self, resolver):
        for token in (None, ""):
            with pytest.raises(AuthenticationError) as exc_info:
                resolver.resolve(token)
            assert exc_info.value.message == "Unauthorized: missing x-agent-token"
            assert exc_info.value.status_code == 401

    def test_unknown_token(self, resolver):
        with pytest.raises(AuthenticationError) as exc_info:
            resolver.resolve("agt_" + "0" * 48)
        assert exc_info.value.message == "Unauthorized: invalid agent token"

    def test_legacy_token_is_ignored_in_agent_mode(self, agent):
        resolver = IdentityResolver({agent.token: agent}, legacy_token="shared-secret")
        with pytest.raises(AuthenticationError):
            resolver.resolve("shared-secret")


class TestLegacyMode:
    """Single shared token mode."""

    def test_matching_token_is_anonymous(self):
        resolver = IdentityResolver(None, legacy_token="shared-secret")
        assert resolver.mode == "legacy"
        assert resolver.resolve("shared-secret") is None

    def test_wrong_token(self):
        resolver = IdentityResolver(None, legacy_token="shared-secret")
        with pytest.raises(AuthenticationError) as exc_info:
            resolver.resolve("shared-secreT")
        assert exc_info.value.message == "Unauthorized: invalid or missing x-agent-token"

    def test_unset_shared_token_is_server_error(self):
        resolver = IdentityResolver(None, legacy_token=None)
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.resolve("anything")
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Server misconfigured: AGENT_TOKEN not set"

    def test_agent_repr_hides_token(self, agent):
        assert agent.token not in repr(agent)
