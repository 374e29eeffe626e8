"""Tests for ClientConfig validation and environment loading."""

import pytest
from pydantic import ValidationError

from capi.config import ClientConfig
from capi.transport import RetryPolicy


class TestEndpointNormalization:
    """The API endpoint is normalized on construction."""

    def test_trailing_slash_removed(self):
        assert ClientConfig(api_endpoint="https://api.example.com/").api_endpoint == (
            "https://api.example.com"
        )

    def test_scheme_added(self):
        assert ClientConfig(api_endpoint="api.example.com").api_endpoint == (
            "https://api.example.com"
        )

    def test_http_scheme_kept(self):
        assert ClientConfig(api_endpoint="http://localhost:8080").api_endpoint == (
            "http://localhost:8080"
        )

    def test_empty_endpoint_rejected(self):
        with pytest.raises(ValidationError):
            ClientConfig(api_endpoint="  ")


class TestValidation:
    """Invalid settings are rejected."""

    def test_defaults(self):
        config = ClientConfig(api_endpoint="api.example.com")

        assert config.timeout == 30.0
        assert config.expiration_buffer == 30.0
        assert config.retry_policy() == RetryPolicy(
            max_attempts=3, base_delay=1.0, max_delay=30.0, backoff_base=2.0
        )

    @pytest.mark.parametrize(
        "overrides",
        [
            {"timeout": 0},
            {"retry_max_attempts": 0},
            {"retry_wait_min": 10, "retry_wait_max": 5},
            {"retry_backoff_base": 0.5},
            {"expiration_buffer": -1},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            ClientConfig(api_endpoint="api.example.com", **overrides)

    def test_skip_tls_requires_dev_mode(self, monkeypatch):
        monkeypatch.delenv("CAPI_DEV_MODE", raising=False)

        with pytest.raises(ValidationError, match="CAPI_DEV_MODE"):
            ClientConfig(api_endpoint="api.example.com", skip_tls_verify=True)

    @pytest.mark.parametrize("value", ["true", "1", "TRUE"])
    def test_skip_tls_allowed_in_dev_mode(self, monkeypatch, value):
        monkeypatch.setenv("CAPI_DEV_MODE", value)

        config = ClientConfig(api_endpoint="api.example.com", skip_tls_verify=True)

        assert config.skip_tls_verify

    def test_retry_policy_mapping(self):
        config = ClientConfig(
            api_endpoint="api.example.com",
            retry_max_attempts=5,
            retry_wait_min=0.5,
            retry_wait_max=8,
            retry_unsafe_methods=False,
        )

        policy = config.retry_policy()

        assert policy.max_attempts == 5
        assert policy.base_delay == 0.5
        assert policy.max_delay == 8
        assert not policy.allows_retry("POST")
        assert policy.allows_retry("GET")

    def test_repr_hides_secrets(self):
        config = ClientConfig(
            api_endpoint="api.example.com",
            client_secret="very-secret",
            password="hunter2",
        )

        assert "very-secret" not in repr(config)
        assert "hunter2" not in repr(config)


class TestFromEnv:
    """CAPI_* variables populate the config."""

    def test_reads_environment(self):
        config = ClientConfig.from_env(
            {
                "CAPI_API": "api.example.com",
                "CAPI_USERNAME": "admin",
                "CAPI_PASSWORD": "pw",
                "CAPI_TIMEOUT": "10",
                "CAPI_RETRY_MAX": "4",
                "CAPI_DEBUG": "true",
            }
        )

        assert config.api_endpoint == "https://api.example.com"
        assert config.username == "admin"
        assert config.has_password_credentials
        assert config.timeout == 10.0
        assert config.retry_max_attempts == 4
        assert config.debug is True

    def test_overrides_win(self):
        config = ClientConfig.from_env(
            {"CAPI_API": "api.example.com", "CAPI_TOKEN": "env-token"},
            access_token="explicit",
        )

        assert config.access_token == "explicit"

    def test_empty_values_ignored(self):
        config = ClientConfig.from_env({"CAPI_API": "api.example.com", "CAPI_TOKEN": ""})

        assert config.access_token == ""

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("CAPI_API", "https://env.example.com/")
        monkeypatch.setenv("CAPI_CLIENT_ID", "client")

        config = ClientConfig.from_env()

        assert config.api_endpoint == "https://env.example.com"
        assert config.client_id == "client"

    def test_missing_endpoint(self):
        with pytest.raises(ValidationError):
            ClientConfig.from_env({})
