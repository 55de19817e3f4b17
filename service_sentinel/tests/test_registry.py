"""
Unit tests for configuration loading and token helpers.
"""

import textwrap

import pytest
from pydantic import ValidationError as PydanticValidationError

from service_sentinel.app.models import HeaderAuth, QueryAuth
from service_sentinel.app.registry.loader import (
    build_gateway_config,
    load_agents,
    load_gateway_config,
    load_services,
    parse_agents,
    parse_services,
)
from service_sentinel.app.registry.tokens import generate_token, is_valid_token_format
from shared.errors import ConfigurationError

SERVICES_YAML = """
allowed_ips:
  - 10.0.0.0/8
services:
  openai:
    base_url: https://api.openai.com/v1
    allowed_hosts: [api.openai.com]
    auth:
      type: header
      header_name: Authorization
      template: "Bearer ${SECRET}"
    secret_env: OPENAI_API_KEY
    allowed_methods: [POST]
    rate_limit_per_minute: 60
    timeout_ms: 5000
  maps:
    base_url: https://maps.example.com
    allowed_hosts: [maps.example.com]
    auth:
      type: query
      query_param: key
      template: "${SECRET}"
    secret_env: MAPS_API_KEY
"""


def _write(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(textwrap.dedent(content))
    return path


def _services_doc(**overrides):
    service = {
        "base_url": "https://api.example.com",
        "allowed_hosts": ["api.example.com"],
        "auth": {"type": "header", "header_name": "X-Api-Key", "template": "${SECRET}"},
        "secret_env": "EXAMPLE_KEY",
    }
    service.update(overrides)
    return {"services": {"example": service}}


class TestLoadServices:
    """Test cases for services.yaml loading."""

    def test_load_valid_file(self, tmp_path):
        services, global_policy = load_services(_write(tmp_path, "services.yaml", SERVICES_YAML))

        assert sorted(services) == ["maps", "openai"]
        openai = services["openai"]
        assert isinstance(openai.auth, HeaderAuth)
        assert openai.allowed_methods == ("POST",)
        assert openai.rate_limit_per_minute == 60
        assert openai.timeout_ms == 5000
        assert isinstance(services["maps"].auth, QueryAuth)
        assert services["maps"].timeout_ms == 30_000
        assert global_policy.allowed_ips == ("10.0.0.0/8",)
        assert global_policy.allowed_origins is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_services(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_services(_write(tmp_path, "services.yaml", "services: [unclosed"))

    @pytest.mark.parametrize("document", [None, [], {"services": []}, {"other": {}}])
    def test_missing_services_map(self, document):
        with pytest.raises(ConfigurationError, match="top-level 'services' map"):
            parse_services(document)

    def test_http_base_url_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_services(_services_doc(base_url="http://api.example.com"))
        assert exc_info.value.message.startswith('Service "example":')
        assert "https" in exc_info.value.message

    def test_base_host_must_be_allowed(self):
        with pytest.raises(ConfigurationError, match="must be in allowed_hosts"):
            parse_services(_services_doc(allowed_hosts=["other.example.com"]))

    def test_template_requires_placeholder(self):
        auth = {"type": "header", "header_name": "X-Api-Key", "template": "static"}
        with pytest.raises(ConfigurationError, match="placeholder"):
            parse_services(_services_doc(auth=auth))

    def test_unknown_auth_type(self):
        auth = {"type": "cookie", "template": "${SECRET}"}
        with pytest.raises(ConfigurationError, match='Service "example"'):
            parse_services(_services_doc(auth=auth))

    @pytest.mark.parametrize("field", ["base_url", "allowed_hosts", "auth", "secret_env"])
    def test_required_fields(self, field):
        document = _services_doc()
        del document["services"]["example"][field]
        with pytest.raises(ConfigurationError, match=field):
            parse_services(document)

    def test_empty_allowed_hosts(self):
        with pytest.raises(ConfigurationError):
            parse_services(_services_doc(allowed_hosts=[]))

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError, match="timeout_ms"):
            parse_services(_services_doc(timeout_ms=0))

    def test_zero_service_limit_loads_as_unlimited(self):
        services, _ = parse_services(_services_doc(rate_limit_per_minute=0))
        assert services["example"].rate_limit_per_minute == 0

    def test_relative_path_prefix_rejected(self):
        with pytest.raises(ConfigurationError, match="allowed_path_prefixes"):
            parse_services(_services_doc(allowed_path_prefixes=["v1"]))

    def test_definitions_are_frozen(self):
        services, _ = parse_services(_services_doc())
        with pytest.raises(PydanticValidationError):
            services["example"].timeout_ms = 1


class TestLoadAgents:
    """Test cases for agents.yaml loading."""

    def test_missing_file_means_legacy_mode(self, tmp_path):
        assert load_agents(tmp_path / "agents.yaml") is None

    def test_load_valid_file(self, tmp_path):
        token = generate_token()
        path = _write(tmp_path, "agents.yaml", f"""
            agents:
              ci-bot:
                token: {token}
                allowed_services: [openai]
                rate_limit_per_minute: 10
                allowed_ips: [10.1.0.0/16]
        """)
        agents = load_agents(path)
        assert agents["ci-bot"].token == token
        assert agents["ci-bot"].allowed_services == ("openai",)
        assert agents["ci-bot"].rate_key == "agent:ci-bot"

    def test_missing_agents_map(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_agents({"agent": {}})
        assert exc_info.value.message == "agents.yaml must have a top-level 'agents' map"

    def test_token_prefix_required(self):
        with pytest.raises(ConfigurationError, match='Agent "bot"'):
            parse_agents({"agents": {"bot": {"token": "abc", "allowed_services": ["openai"]}}})

    def test_empty_scope_rejected(self):
        with pytest.raises(ConfigurationError, match="allowed_services"):
            parse_agents({"agents": {"bot": {"token": generate_token(), "allowed_services": []}}})

    def test_non_positive_agent_limit(self):
        raw = {"token": generate_token(), "allowed_services": ["openai"], "rate_limit_per_minute": 0}
        with pytest.raises(ConfigurationError, match="rate_limit_per_minute"):
            parse_agents({"agents": {"bot": raw}})


class TestBuildGatewayConfig:
    """Cross-file validation."""

    @pytest.fixture
    def parsed(self):
        return parse_services(_services_doc())

    def test_duplicate_tokens(self, parsed):
        services, global_policy = parsed
        token = generate_token()
        agents = parse_agents({"agents": {
            "a": {"token": token, "allowed_services": ["example"]},
            "b": {"token": token, "allowed_services": ["example"]},
        }})
        with pytest.raises(ConfigurationError) as exc_info:
            build_gateway_config(services, global_policy, agents)
        assert "Duplicate agent token" in exc_info.value.message
        assert token not in exc_info.value.message

    def test_unknown_service_reference(self, parsed):
        services, global_policy = parsed
        agents = parse_agents({"agents": {"a": {"token": generate_token(), "allowed_services": ["ghost"]}}})
        with pytest.raises(ConfigurationError) as exc_info:
            build_gateway_config(services, global_policy, agents)
        assert exc_info.value.message == 'Agent "a" references unknown service "ghost". Available: example'

    def test_legacy_mode_requires_token(self, parsed):
        services, global_policy = parsed
        with pytest.raises(ConfigurationError, match="AGENT_TOKEN"):
            build_gateway_config(services, global_policy, None)

    def test_legacy_mode(self, parsed):
        services, global_policy = parsed
        config = build_gateway_config(services, global_policy, None, legacy_token="shared")
        assert config.auth_mode == "legacy"
        assert config.agents_by_token is None
        assert config.legacy_token == "shared"

    def test_tables_are_read_only(self, parsed):
        services, global_policy = parsed
        agents = parse_agents({"agents": {"a": {"token": generate_token(), "allowed_services": ["example"]}}})
        config = build_gateway_config(services, global_policy, agents, legacy_token="ignored")
        assert config.auth_mode == "agents"
        assert config.legacy_token is None
        with pytest.raises(TypeError):
            config.services["new"] = services["example"]
        with pytest.raises(TypeError):
            config.agents_by_token["x"] = agents["a"]

    def test_load_gateway_config(self, tmp_path):
        services_path = _write(tmp_path, "services.yaml", SERVICES_YAML)
        agents_path = _write(tmp_path, "agents.yaml", f"""
            agents:
              bot:
                token: {generate_token()}
                allowed_services: [openai, maps]
        """)
        config = load_gateway_config(services_path, agents_path)
        assert config.auth_mode == "agents"
        assert len(config.agents_by_token) == 1


class TestTokens:
    """Token generation helpers."""

    def test_generate_token_format(self):
        token = generate_token()
        assert token.startswith("agt_")
        assert len(token) == 52
        assert is_valid_token_format(token)

    def test_tokens_are_unique(self):
        assert len({generate_token() for _ in range(50)}) == 50

    def test_invalid_formats(self):
        assert not is_valid_token_format("agt_short")
        assert not is_valid_token_format("tok_" + "a" * 48)
        assert not is_valid_token_format(None)
