"""Token managers.

Three strategies are supported, and only three:

- StaticTokenManager hands out a fixed bearer token and cannot refresh it.
- OAuth2TokenManager acquires and refreshes tokens from UAA.
- FallbackTokenManager starts with a static token and switches to OAuth2, for
  good, the first time the static token has to be refreshed.

All of them expose ``get_token``, ``refresh_token`` and ``set_token``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Union

import httpx

from ..errors import AuthError, StaticTokenRefreshError
from .jwt_claims import try_get_expiry
from .oauth2 import (
    DEFAULT_CLIENT_ID,
    DEFAULT_SCOPES,
    GRANT_CLIENT_CREDENTIALS,
    GRANT_PASSWORD,
    GRANT_REFRESH_TOKEN,
    OAuth2Config,
    TokenEndpoint,
    token_url_for,
)
from .token import DEFAULT_EXPIRATION_BUFFER, Token

logger = logging.getLogger(__name__)

TokenCallback = Callable[[Token], None]


class StaticTokenManager:
    """Serves a caller-supplied bearer token."""

    def __init__(
        self,
        token: str,
        expires_at: Optional[datetime] = None,
        expiration_buffer: float = DEFAULT_EXPIRATION_BUFFER,
    ):
        self.expiration_buffer = expiration_buffer
        self._token = Token(access_token=token, expires_at=expires_at)

    @property
    def token(self) -> Token:
        return self._token

    async def get_token(self) -> str:
        token = self._token
        if token.expires_at is not None and not token.is_valid(self.expiration_buffer):
            raise StaticTokenRefreshError(
                "static token has expired and cannot be refreshed"
            )
        return token.access_token

    async def refresh_token(self, rejected: Optional[str] = None) -> None:
        raise StaticTokenRefreshError()

    def set_token(self, value: str, expires_at: Optional[datetime] = None) -> None:
        self._token = Token(access_token=value, expires_at=expires_at)

    async def close(self) -> None:
        pass


class OAuth2TokenManager:
    """Acquires, caches and refreshes tokens from a UAA token endpoint.

    Grant selection when a new token is needed:

    1. refresh-token grant, if a refresh token is known
    2. password grant, if username and password are configured
    3. client-credentials grant, if client id and secret are configured

    A failed refresh-token grant falls through to the next available grant.

    Concurrent callers share one in-flight exchange. The exchange runs as its
    own task, so cancelling one waiting caller never aborts it for the others.
    """

    def __init__(
        self,
        config: OAuth2Config,
        endpoint: Optional[TokenEndpoint] = None,
        expiration_buffer: float = DEFAULT_EXPIRATION_BUFFER,
        on_token: Optional[TokenCallback] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        verify: bool = True,
    ):
        self.config = config
        self.endpoint = endpoint or TokenEndpoint(
            config, http_client=http_client, verify=verify
        )
        self.expiration_buffer = expiration_buffer
        self.on_token = on_token
        self._token: Optional[Token] = None
        self._lock: Optional[asyncio.Lock] = None
        self._inflight: Optional["asyncio.Task[Token]"] = None

    @property
    def token(self) -> Optional[Token]:
        return self._token

    @property
    def lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the loop that runs the manager
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get_token(self) -> str:
        """Return a valid access token, acquiring a new one if needed.

        Raises:
            AuthError: If no token could be acquired
        """
        async with self.lock:
            token = self._token
            if token is not None and token.is_valid(self.expiration_buffer):
                return token.access_token
            logger.debug("No valid cached token, acquiring a new one")
            task = self._start_exchange()

        token = await asyncio.shield(task)
        return token.access_token

    async def refresh_token(self, rejected: Optional[str] = None) -> None:
        """Force acquisition of a new token.

        Args:
            rejected: Access token the server refused. When the cached token
                no longer matches it, another caller already replaced it and
                no exchange is started.

        A caller that finds an exchange already running joins it.
        """
        observed = self._token
        async with self.lock:
            current = self._token
            if self._inflight is not None and not self._inflight.done():
                task = self._inflight
            elif (
                rejected is not None
                and current is not None
                and current.access_token != rejected
            ):
                logger.debug("Rejected token was already replaced, skipping refresh")
                return
            elif rejected is None and current is not observed:
                logger.debug("Token was refreshed concurrently, skipping refresh")
                return
            else:
                task = self._start_exchange()

        await asyncio.shield(task)

    def set_token(self, value: str, expires_at: Optional[datetime] = None) -> None:
        if expires_at is None:
            expires_at = try_get_expiry(value)
        refresh = self._token.refresh_token if self._token else None
        self._token = Token(
            access_token=value,
            token_type="bearer",
            refresh_token=refresh,
            expires_at=expires_at,
        )

    async def close(self) -> None:
        await self.endpoint.close()

    def _start_exchange(self) -> "asyncio.Task[Token]":
        # Caller holds self.lock
        if self._inflight is None or self._inflight.done():
            task = asyncio.ensure_future(self._exchange())
            task.add_done_callback(self._exchange_done)
            self._inflight = task
        return self._inflight

    def _exchange_done(self, task: "asyncio.Task[Token]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Token exchange failed: {task.exception()}")

    async def _exchange(self) -> Token:
        token = await self._acquire()
        self._token = token
        logger.debug("Token refreshed")
        self._notify(token)
        return token

    def _notify(self, token: Token) -> None:
        if self.on_token is None:
            return
        try:
            self.on_token(token)
        except Exception as e:
            logger.warning(f"Failed to persist refreshed token: {e}")

    async def _acquire(self) -> Token:
        config = self.config
        refresh = (self._token.refresh_token if self._token else None) or (
            config.refresh_token or None
        )
        has_other_grant = (
            config.has_password_credentials() or config.has_client_credentials()
        )

        if refresh:
            try:
                return await self.endpoint.request_token(
                    GRANT_REFRESH_TOKEN,
                    {"refresh_token": refresh},
                    previous_refresh_token=refresh,
                )
            except AuthError as e:
                if not has_other_grant:
                    raise
                logger.warning(f"Refresh token grant failed, using credentials: {e}")

        if config.has_password_credentials():
            return await self.endpoint.request_token(
                GRANT_PASSWORD,
                {"username": config.username, "password": config.password},
            )

        if config.has_client_credentials():
            return await self.endpoint.request_token(GRANT_CLIENT_CREDENTIALS, {})

        raise AuthError("no valid credentials available")


class FallbackTokenManager:
    """Uses a static token until it is rejected, then OAuth2 for good."""

    def __init__(self, static_token: str, oauth: OAuth2TokenManager):
        self._static = StaticTokenManager(
            static_token, expiration_buffer=oauth.expiration_buffer
        )
        self.oauth = oauth
        self._using_oauth = not static_token
        self._static_tried = False
        self._lock: Optional[asyncio.Lock] = None

    @property
    def using_oauth(self) -> bool:
        return self._using_oauth

    @property
    def static_tried(self) -> bool:
        return self._static_tried

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def get_token(self) -> str:
        async with self.lock:
            if not self._using_oauth:
                try:
                    token = await self._static.get_token()
                except StaticTokenRefreshError:
                    logger.info("Static token expired, switching to OAuth2")
                    self._using_oauth = True
                else:
                    self._static_tried = True
                    return token

        return await self.oauth.get_token()

    async def refresh_token(self, rejected: Optional[str] = None) -> None:
        """Refresh the token, leaving the static phase if still in it.

        The switch is one-way: a failed OAuth2 acquisition afterwards does not
        bring the static token back. A rejection of the static token that
        arrives after the switch does not start another exchange.
        """
        async with self.lock:
            switching = not self._using_oauth
            if switching:
                logger.info("Static token rejected, switching to OAuth2")
                self._using_oauth = True

        if switching:
            await self.oauth.get_token()
        else:
            await self.oauth.refresh_token(rejected)

    def set_token(self, value: str, expires_at: Optional[datetime] = None) -> None:
        if self._using_oauth:
            self.oauth.set_token(value, expires_at)
        else:
            self._static.set_token(value, expires_at)

    async def close(self) -> None:
        await self.oauth.close()


TokenManager = Union[StaticTokenManager, OAuth2TokenManager, FallbackTokenManager]


def uaa_token_manager(
    uaa_url: str,
    client_id: str = DEFAULT_CLIENT_ID,
    client_secret: str = "",
    username: str = "",
    password: str = "",
    refresh_token: str = "",
    **kwargs,
) -> OAuth2TokenManager:
    """Build an OAuth2 manager for a UAA server with Cloud Controller scopes."""
    config = OAuth2Config(
        token_url=token_url_for(uaa_url),
        client_id=client_id,
        client_secret=client_secret,
        username=username,
        password=password,
        refresh_token=refresh_token,
        scopes=DEFAULT_SCOPES,
    )
    return OAuth2TokenManager(config, **kwargs)
