"""Cloud Controller API client.

CAPIClient wires a token manager, a transport and the resource wrappers
together from one ClientConfig. Build it with ``await CAPIClient.create(config)``
when the UAA token endpoint has to be discovered from the API root.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .auth.managers import (
    FallbackTokenManager,
    OAuth2TokenManager,
    StaticTokenManager,
    TokenCallback,
    TokenManager,
)
from .auth.oauth2 import DEFAULT_CLIENT_ID, OAuth2Config, token_url_for
from .config import ClientConfig
from .errors import AuthError
from .interceptors import RequestInterceptor, ResponseInterceptor
from .pagination import Link
from .resources import (
    AppUsageEvent,
    ServiceUsageEvent,
    UsageEventsClient,
    app_usage_events,
    service_usage_events,
)
from .transport import Transport

logger = logging.getLogger(__name__)


class Info(BaseModel):
    """Response of GET /v3/info."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    build: str = ""
    version: Any = None
    description: str = ""
    links: Dict[str, Optional[Link]] = Field(default_factory=dict)


class RootInfo(BaseModel):
    """Response of GET / and GET /v3: links to the API's services."""

    model_config = ConfigDict(extra="allow")

    links: Dict[str, Optional[Link]] = Field(default_factory=dict)

    def link(self, name: str) -> Optional[str]:
        entry = self.links.get(name)
        return entry.href if entry is not None and entry.href else None


def create_token_manager(
    config: ClientConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    on_token: Optional[TokenCallback] = None,
) -> Optional[TokenManager]:
    """Pick the token manager for a configuration.

    Precedence:

    1. access token plus username/password: static first, OAuth2 fallback
    2. access token: static
    3. client id and secret: OAuth2 (with any user or refresh credentials)
    4. username and password: OAuth2 password grant with the ``cf`` client
    5. refresh token: OAuth2 refresh grant with the ``cf`` client
    6. nothing: no authentication

    Raises:
        AuthError: If OAuth2 is needed but ``config.token_url`` is empty
    """

    def oauth(client_id: str, client_secret: str) -> OAuth2TokenManager:
        if not config.token_url:
            raise AuthError(
                "token_url is required for OAuth2 authentication; "
                "use CAPIClient.create to discover it"
            )
        oauth_config = OAuth2Config(
            token_url=config.token_url,
            client_id=client_id,
            client_secret=client_secret,
            username=config.username,
            password=config.password,
            refresh_token=config.refresh_token,
        )
        return OAuth2TokenManager(
            oauth_config,
            expiration_buffer=config.expiration_buffer,
            on_token=on_token,
            http_client=http_client,
            verify=not config.skip_tls_verify,
        )

    if config.access_token and config.has_password_credentials:
        logger.debug("Using static token with OAuth2 password fallback")
        return FallbackTokenManager(config.access_token, oauth(DEFAULT_CLIENT_ID, ""))

    if config.access_token:
        logger.debug("Using static token")
        return StaticTokenManager(
            config.access_token, expiration_buffer=config.expiration_buffer
        )

    if config.has_client_credentials:
        logger.debug("Using OAuth2 client credentials")
        return oauth(config.client_id, config.client_secret)

    if config.has_password_credentials or config.refresh_token:
        logger.debug(f"Using OAuth2 with the {DEFAULT_CLIENT_ID} client")
        return oauth(DEFAULT_CLIENT_ID, "")

    logger.debug("No credentials configured, requests are unauthenticated")
    return None


async def discover_token_url(transport: Transport) -> str:
    """Find the UAA token endpoint from the API root document.

    Raises:
        AuthError: If the root document links neither UAA nor a login server
    """
    root = (await transport.get("/")).decode(RootInfo)
    base = root.link("uaa") or root.link("login")
    if not base:
        raise AuthError("no UAA or login URL found in API root response")
    token_url = token_url_for(base)
    logger.debug(f"Discovered token endpoint {token_url}")
    return token_url


class CAPIClient:
    """Entry point bundling authentication, transport and resources."""

    def __init__(
        self,
        config: ClientConfig,
        token_manager: Optional[TokenManager] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_token: Optional[TokenCallback] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        request_interceptors: Optional[Sequence[RequestInterceptor]] = None,
        response_interceptors: Optional[Sequence[ResponseInterceptor]] = None,
    ):
        self.config = config
        self.token_manager = (
            token_manager
            if token_manager is not None
            else create_token_manager(config, http_client=http_client, on_token=on_token)
        )
        self.transport = Transport(
            config.api_endpoint,
            token_manager=self.token_manager,
            retry_policy=config.retry_policy(),
            timeout=config.timeout,
            user_agent=config.user_agent,
            verify=not config.skip_tls_verify,
            http_client=http_client,
            logger=logger,
            debug=config.debug,
            sleep=sleep,
            request_interceptors=request_interceptors,
            response_interceptors=response_interceptors,
        )
        self.app_usage_events: UsageEventsClient[AppUsageEvent] = app_usage_events(
            self.transport
        )
        self.service_usage_events: UsageEventsClient[ServiceUsageEvent] = (
            service_usage_events(self.transport)
        )

    @classmethod
    async def create(cls, config: ClientConfig, **kwargs: Any) -> "CAPIClient":
        """Build a client, discovering the token endpoint when needed."""
        if (
            kwargs.get("token_manager") is None
            and config.needs_oauth
            and not config.token_url
        ):
            discovery = Transport(
                config.api_endpoint,
                retry_policy=config.retry_policy(),
                timeout=config.timeout,
                user_agent=config.user_agent,
                verify=not config.skip_tls_verify,
                http_client=kwargs.get("http_client"),
                sleep=kwargs.get("sleep"),
            )
            try:
                token_url = await discover_token_url(discovery)
            finally:
                await discovery.close()
            config = config.model_copy(update={"token_url": token_url})

        return cls(config, **kwargs)

    async def get_info(self) -> Info:
        return (await self.transport.get("/v3/info")).decode(Info)

    async def get_root_info(self) -> RootInfo:
        return (await self.transport.get("/v3")).decode(RootInfo)

    async def get_token(self) -> str:
        if self.token_manager is None:
            raise AuthError("no authentication configured")
        return await self.token_manager.get_token()

    async def close(self) -> None:
        await self.transport.close()
        if self.token_manager is not None:
            await self.token_manager.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
