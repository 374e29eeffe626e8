"""
Shared pytest fixtures for capi tests.

Provides a scripted UAA token endpoint, an httpx mock-transport responder and
JWT minting helpers.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import httpx
import jwt
import pytest

from capi.auth import OAuth2Config, Token, TokenEndpoint
from capi.errors import AuthError

API_URL = "https://api.example.com"
TOKEN_URL = "https://uaa.example.com/oauth/token"


class FakeTokenEndpoint(TokenEndpoint):
    """Token endpoint that issues numbered tokens without network I/O.

    Set ``gate`` to an asyncio.Event to hold exchanges until it is set, or
    ``error`` to make every exchange fail.
    """

    def __init__(self, lifetime: timedelta = timedelta(hours=1)):
        super().__init__(OAuth2Config(token_url=TOKEN_URL))
        self.lifetime = lifetime
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[AuthError] = None
        self.failing_grants: set = set()

    async def request_token(self, grant_type, params, previous_refresh_token=None):
        self.calls.append((grant_type, dict(params)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if grant_type in self.failing_grants:
            raise AuthError(f"token request failed: invalid_grant: {grant_type}")

        number = len(self.calls)
        return Token(
            access_token=f"token-{number}",
            refresh_token=f"refresh-{number}",
            expires_at=datetime.now(timezone.utc) + self.lifetime,
        )


class Responder:
    """httpx.MockTransport handler replaying a scripted sequence.

    Each item is an httpx.Response, an exception to raise, or a callable
    taking the request. The last item repeats once the script runs out.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return httpx.Response(
                item.status_code, headers=item.headers, content=item.content
            )
        return item(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def responder_factory() -> Callable[..., Responder]:
    return Responder


@pytest.fixture
def make_jwt() -> Callable[..., str]:
    """Mint an HS256 JWT expiring ``expires_in`` seconds from now."""

    def _make(expires_in: Optional[float] = 3600, **claims) -> str:
        payload = dict(claims)
        now = datetime.now(timezone.utc)
        payload.setdefault("iat", int(now.timestamp()))
        if expires_in is not None:
            payload["exp"] = int((now + timedelta(seconds=expires_in)).timestamp())
        return jwt.encode(payload, "test_secret_key", algorithm="HS256")

    return _make
