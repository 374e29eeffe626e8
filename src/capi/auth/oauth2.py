"""OAuth2 token endpoint client for UAA.

Performs the password, client-credentials and refresh-token grants as a
form-encoded POST with HTTP Basic client authentication.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import httpx

from ..errors import AuthError
from .jwt_claims import try_get_expiry
from .token import Token, expiry_from_seconds

logger = logging.getLogger(__name__)

GRANT_PASSWORD = "password"
GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_REFRESH_TOKEN = "refresh_token"

# Client id used by the cf CLI; UAA accepts it with an empty secret
DEFAULT_CLIENT_ID = "cf"
DEFAULT_SCOPES = ("cloud_controller.read", "cloud_controller.write")

DEFAULT_TOKEN_TIMEOUT = 30.0


@dataclass(frozen=True)
class OAuth2Config:
    """Credentials and endpoint for OAuth2 token acquisition."""

    token_url: str
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    refresh_token: str = ""
    scopes: Tuple[str, ...] = field(default_factory=tuple)

    def has_password_credentials(self) -> bool:
        return bool(self.username and self.password)

    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def __repr__(self) -> str:
        return (
            f"OAuth2Config(token_url={self.token_url!r}, client_id={self.client_id!r}, "
            f"username={self.username!r})"
        )


def token_url_for(uaa_url: str) -> str:
    """Build the token endpoint URL from a UAA or login server base URL."""
    return f"{uaa_url.rstrip('/')}/oauth/token"


class TokenEndpoint:
    """Client for a UAA ``/oauth/token`` endpoint."""

    def __init__(
        self,
        config: OAuth2Config,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TOKEN_TIMEOUT,
        verify: bool = True,
    ):
        self.config = config
        self.timeout = timeout
        self.verify = verify
        self._session = http_client
        self._owns_session = http_client is None

    @property
    def session(self) -> httpx.AsyncClient:
        if self._session is None or self._session.is_closed:
            self._session = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.aclose()
        self._session = None

    async def request_token(
        self,
        grant_type: str,
        params: Dict[str, str],
        previous_refresh_token: Optional[str] = None,
    ) -> Token:
        """Exchange a grant for a token.

        Args:
            grant_type: One of the GRANT_* constants
            params: Grant-specific form fields
            previous_refresh_token: Kept when the response carries no new one

        Returns:
            Newly issued token

        Raises:
            AuthError: If the exchange fails for any reason
        """
        form = {"grant_type": grant_type, **params}
        if self.config.scopes:
            form["scope"] = " ".join(self.config.scopes)

        logger.debug(f"Requesting token with {grant_type} grant")

        try:
            response = await self.session.post(
                self.config.token_url,
                data=form,
                auth=(self.config.client_id, self.config.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise AuthError(
                f"token request to {self.config.token_url} failed: {e}"
            ) from e

        if response.status_code < 200 or response.status_code >= 300:
            raise AuthError(
                self._describe_failure(response), status_code=response.status_code
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            raise AuthError(f"invalid token response: {e}") from e

        if not isinstance(payload, dict):
            raise AuthError("invalid token response: expected a JSON object")

        access_token = payload.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise AuthError("no access token in token response")

        expires_at = expiry_from_seconds(payload.get("expires_in"))
        if expires_at is None:
            expires_at = try_get_expiry(access_token)

        return Token(
            access_token=access_token,
            token_type=payload.get("token_type") or "bearer",
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
        )

    @staticmethod
    def _describe_failure(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except json.JSONDecodeError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            description = payload.get("error_description", "")
            return f"token request failed: {payload['error']}: {description}"

        return f"token request failed with status {response.status_code}: {response.text}"
