"""Client configuration."""

import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .auth.token import DEFAULT_EXPIRATION_BUFFER
from .transport import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT, RetryPolicy

logger = logging.getLogger(__name__)

DEV_MODE_ENV = "CAPI_DEV_MODE"

# Environment variable -> ClientConfig field
ENV_FIELDS = {
    "CAPI_API": "api_endpoint",
    "CAPI_TOKEN": "access_token",
    "CAPI_CLIENT_ID": "client_id",
    "CAPI_CLIENT_SECRET": "client_secret",
    "CAPI_USERNAME": "username",
    "CAPI_PASSWORD": "password",
    "CAPI_REFRESH_TOKEN": "refresh_token",
    "CAPI_TOKEN_URL": "token_url",
    "CAPI_TIMEOUT": "timeout",
    "CAPI_RETRY_MAX": "retry_max_attempts",
    "CAPI_DEBUG": "debug",
}


def dev_mode_enabled() -> bool:
    return os.environ.get(DEV_MODE_ENV, "").lower() in ("true", "1")


class ClientConfig(BaseModel):
    """Connection, credential and retry settings for CAPIClient."""

    api_endpoint: str = Field(..., description="Cloud Controller API URL")
    access_token: str = Field(default="", description="Pre-issued bearer token")
    client_id: str = Field(default="", description="OAuth2 client id")
    client_secret: str = Field(default="", description="OAuth2 client secret")
    username: str = Field(default="", description="User name for the password grant")
    password: str = Field(default="", description="Password for the password grant")
    refresh_token: str = Field(default="", description="OAuth2 refresh token")
    token_url: str = Field(
        default="",
        description="UAA token endpoint; discovered from the API root when empty",
    )
    skip_tls_verify: bool = Field(
        default=False,
        description="Disable TLS verification (requires CAPI_DEV_MODE)",
    )
    timeout: float = Field(
        default=DEFAULT_TIMEOUT, description="Request timeout in seconds"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT, description="User-Agent header value"
    )
    retry_max_attempts: int = Field(
        default=3, description="Total attempts per request, including the first"
    )
    retry_wait_min: float = Field(
        default=1.0, description="Initial backoff delay in seconds"
    )
    retry_wait_max: float = Field(
        default=30.0, description="Maximum backoff delay in seconds"
    )
    retry_backoff_base: float = Field(
        default=2.0, description="Exponential backoff multiplier"
    )
    retry_unsafe_methods: bool = Field(
        default=True, description="Also retry POST and PATCH requests"
    )
    expiration_buffer: float = Field(
        default=DEFAULT_EXPIRATION_BUFFER,
        description="Seconds before expiry at which a token is refreshed",
    )
    debug: bool = Field(default=False, description="Log every request and response")

    @field_validator("api_endpoint")
    @classmethod
    def normalize_endpoint(cls, v: str) -> str:
        """Strip trailing slashes and default to https."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("api_endpoint is required")
        if "://" not in v:
            v = f"https://{v}"
        return v

    @field_validator("token_url")
    @classmethod
    def normalize_token_url(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("timeout", "expiration_buffer")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("retry_max_attempts")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        return v

    @model_validator(mode="after")
    def check_consistency(self) -> "ClientConfig":
        if self.retry_wait_min < 0 or self.retry_wait_min > self.retry_wait_max:
            raise ValueError("retry_wait_min must be between 0 and retry_wait_max")
        if self.retry_backoff_base < 1:
            raise ValueError("retry_backoff_base must be at least 1")
        if self.skip_tls_verify and not dev_mode_enabled():
            raise ValueError(
                f"skip_tls_verify is only allowed when {DEV_MODE_ENV} is set"
            )
        return self

    @property
    def has_password_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def needs_oauth(self) -> bool:
        """True when OAuth2 may be used and a token URL is required."""
        return (
            self.has_password_credentials
            or self.has_client_credentials
            or bool(self.refresh_token)
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_wait_min,
            max_delay=self.retry_wait_max,
            backoff_base=self.retry_backoff_base,
            retry_unsafe_methods=self.retry_unsafe_methods,
        )

    @classmethod
    def from_env(
        cls, environ: Optional[Dict[str, str]] = None, **overrides: Any
    ) -> "ClientConfig":
        """Build a config from CAPI_* environment variables.

        Explicit keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for env_name, field_name in ENV_FIELDS.items():
            value = env.get(env_name)
            if value is not None and value != "":
                values[field_name] = value
                logger.debug(f"Using {env_name} from environment")
        values.update(overrides)
        return cls(**values)

    def __repr__(self) -> str:
        return (
            f"ClientConfig(api_endpoint={self.api_endpoint!r}, "
            f"client_id={self.client_id!r}, username={self.username!r})"
        )
