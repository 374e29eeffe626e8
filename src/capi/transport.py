"""HTTP transport for the Cloud Controller API.

Executes requests against a base endpoint: attaches bearer tokens, retries
transient failures with exponential backoff, refreshes the token once on a
401 and maps error bodies into APIError.
"""

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from . import __version__
from .auth.managers import TokenManager
from .errors import (
    CAPIError,
    DecodeError,
    InterceptorError,
    RetriesExhaustedError,
    parse_error_response,
)
from .interceptors import (
    InterceptedRequest,
    InterceptedResponse,
    RequestInterceptor,
    ResponseInterceptor,
)
from .network_errors import NetworkErrorHandler, is_retryable_status
from .query import QueryParams

DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = f"capi-client/{__version__}"

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

Query = Union[QueryParams, Mapping[str, Union[str, int, Sequence[str]]], None]
M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry and backoff settings.

    ``max_attempts`` counts every attempt including the first. The wait
    before attempt k+1 is ``min(base_delay * backoff_base ** (k - 1), max_delay)``.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_base: float = 2.0
    retry_unsafe_methods: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay must not exceed max_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Wait before the attempt following ``attempt`` (1-based)."""
        delay = self.base_delay * (self.backoff_base ** (attempt - 1))
        return float(min(delay, self.max_delay))

    def allows_retry(self, method: str) -> bool:
        return self.retry_unsafe_methods or method.upper() in IDEMPOTENT_METHODS


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    path: str
    query: Query = None
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RawResponse:
    """Successful response, returned without interpretation."""

    status_code: int
    headers: Mapping[str, str]
    content: bytes
    method: str = ""
    path: str = ""

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        try:
            return json.loads(self.content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(
                f"invalid JSON in response to {self.method} {self.path}: {e}",
                method=self.method,
                path=self.path,
            ) from e

    def decode(self, model: Type[M]) -> M:
        try:
            return model.model_validate_json(self.content)
        except ValidationError as e:
            raise DecodeError(
                f"unexpected response to {self.method} {self.path}: {e}",
                method=self.method,
                path=self.path,
            ) from e


def render_query(query: Query) -> str:
    """Render query parameters, joining multiple values with commas."""
    if query is None:
        return ""
    if isinstance(query, QueryParams):
        return query.to_wire_query()

    pairs = []
    for key, value in query.items():
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        pairs.append((key, str(value)))
    return urlencode(pairs, safe=",[]")


class Transport:
    """Request executor shared by every resource wrapper."""

    def __init__(
        self,
        base_url: str,
        token_manager: Optional[TokenManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        verify: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
        debug: bool = False,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        request_interceptors: Optional[Sequence[RequestInterceptor]] = None,
        response_interceptors: Optional[Sequence[ResponseInterceptor]] = None,
    ):
        """Initialize the transport.

        Args:
            base_url: API endpoint, e.g. https://api.example.com
            token_manager: Source of bearer tokens; None sends no Authorization
            retry_policy: Retry settings, defaults to RetryPolicy()
            timeout: Per-request timeout in seconds
            user_agent: Value of the User-Agent header
            verify: Verify TLS certificates
            http_client: Preconfigured client to use instead of a private one
            logger: Logger for request diagnostics
            debug: Log every request and response at debug level
            sleep: Coroutine used for backoff waits
            request_interceptors: Run on every attempt before it is sent
            response_interceptors: Run on every attempt after it completes
        """
        self.base_url = base_url.rstrip("/")
        self.token_manager = token_manager
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.user_agent = user_agent
        self.verify = verify
        self.logger = logger or logging.getLogger(__name__)
        self.debug = debug
        self._sleep = sleep or asyncio.sleep
        self._session = http_client
        self._owns_session = http_client is None
        self._network_error_handler = NetworkErrorHandler()
        self.request_interceptors: List[RequestInterceptor] = list(
            request_interceptors or ()
        )
        self.response_interceptors: List[ResponseInterceptor] = list(
            response_interceptors or ()
        )

    @property
    def session(self) -> httpx.AsyncClient:
        """Get or create the HTTP session."""
        if self._session is None or self._session.is_closed:
            timeouts = httpx.Timeout(
                connect=min(10.0, self.timeout),
                read=self.timeout,
                write=self.timeout,
                pool=min(5.0, self.timeout),
            )
            limits = httpx.Limits(
                max_connections=100,
                max_keepalive_connections=20,
                keepalive_expiry=30.0,
            )
            self._session = httpx.AsyncClient(
                timeout=timeouts,
                limits=limits,
                follow_redirects=True,
                verify=self.verify,
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._session is not None and self._owns_session:
            await self._session.aclose()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def build_url(self, path: str, query: Query = None) -> str:
        if path.startswith(("http://", "https://")):
            url = path
        else:
            if not path.startswith("/"):
                path = "/" + path
            url = f"{self.base_url}{path}"

        rendered = render_query(query)
        if rendered:
            url += ("&" if "?" in url else "?") + rendered
        return url

    async def get(self, path: str, query: Query = None) -> RawResponse:
        return await self.execute(RequestDescriptor("GET", path, query=query))

    async def post(self, path: str, body: Any = None) -> RawResponse:
        return await self.execute(RequestDescriptor("POST", path, body=body))

    async def put(self, path: str, body: Any = None) -> RawResponse:
        return await self.execute(RequestDescriptor("PUT", path, body=body))

    async def patch(self, path: str, body: Any = None) -> RawResponse:
        return await self.execute(RequestDescriptor("PATCH", path, body=body))

    async def delete(self, path: str) -> RawResponse:
        return await self.execute(RequestDescriptor("DELETE", path))

    async def execute(self, request: RequestDescriptor) -> RawResponse:
        """Execute a request with token handling and retries.

        Returns:
            RawResponse for any 2xx status

        Raises:
            AuthError: If no token could be obtained or refreshed
            APIError: For non-retryable error statuses, or a second 401
            TransportError: For non-retryable network failures
            RetriesExhaustedError: When every attempt failed transiently
            InterceptorError: When an interceptor fails
        """
        method = request.method.upper()
        url = self.build_url(request.path, request.query)
        content = self._encode_body(request)
        refreshed = False
        attempt = 1

        while True:
            headers, sent_token = await self._build_headers(
                request, content is not None
            )
            outgoing = InterceptedRequest(
                method=method,
                path=request.path,
                url=url,
                headers=headers,
                attempt=attempt,
            )
            await self._run_request_interceptors(outgoing)

            if self.debug:
                self.logger.debug(
                    "HTTP Request",
                    extra={"method": method, "path": request.path, "attempt": attempt},
                )

            started = time.monotonic()
            try:
                response = await self.session.request(
                    method, outgoing.url, headers=outgoing.headers, content=content
                )
            except httpx.TransportError as e:
                await self._run_response_interceptors(
                    outgoing, InterceptedResponse(status_code=0, error=e)
                )
                error = self._network_error_handler.classify_network_error(e)
                error.__cause__ = e
                delay = self._check_retry(error, method, attempt)
            else:
                status = response.status_code
                if self.debug:
                    self.logger.debug(
                        "HTTP Response",
                        extra={
                            "method": method,
                            "path": request.path,
                            "attempt": attempt,
                            "status_code": status,
                            "duration_ms": int((time.monotonic() - started) * 1000),
                        },
                    )
                await self._run_response_interceptors(
                    outgoing,
                    InterceptedResponse(
                        status_code=status, headers=dict(response.headers)
                    ),
                )

                if 200 <= status < 300:
                    return RawResponse(
                        status_code=status,
                        headers=dict(response.headers),
                        content=response.content,
                        method=method,
                        path=request.path,
                    )

                if status == 401 and self.token_manager is not None and not refreshed:
                    refreshed = True
                    self.logger.debug(
                        f"Received 401 for {method} {request.path}, refreshing token"
                    )
                    await self.token_manager.refresh_token(rejected=sent_token)
                    continue

                api_error = parse_error_response(
                    status, response.content, method=method, path=request.path
                )
                if not is_retryable_status(status):
                    raise api_error
                delay = self._check_retry(api_error, method, attempt)
                delay = self._honor_retry_after(response, delay)

            self.logger.warning(
                f"{method} {request.path} failed on attempt {attempt}/"
                f"{self.retry_policy.max_attempts}, retrying in {delay:.1f}s"
            )
            await self._sleep(delay)
            attempt += 1

    def _check_retry(self, error: CAPIError, method: str, attempt: int) -> float:
        """Return the backoff delay, or raise if no further attempt is allowed."""
        policy = self.retry_policy
        if not self._network_error_handler.is_error_retryable(error):
            raise error
        if not policy.allows_retry(method):
            raise error
        if attempt >= policy.max_attempts:
            raise RetriesExhaustedError(attempt, error) from error
        return policy.delay_for(attempt)

    def _honor_retry_after(self, response: httpx.Response, delay: float) -> float:
        if response.status_code != 429:
            return delay
        try:
            retry_after = float(response.headers.get("Retry-After", ""))
        except ValueError:
            return delay
        return min(max(delay, retry_after), self.retry_policy.max_delay)

    async def _build_headers(
        self, request: RequestDescriptor, has_body: bool
    ) -> Tuple[Dict[str, str], Optional[str]]:
        """Return the attempt's headers and the bearer token placed in them."""
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        headers.update(request.headers)
        token = None
        if self.token_manager is not None:
            token = await self.token_manager.get_token()
            headers["Authorization"] = f"Bearer {token}"
        return headers, token

    async def _run_request_interceptors(self, request: InterceptedRequest) -> None:
        for interceptor in self.request_interceptors:
            try:
                result = interceptor(request)
                if inspect.isawaitable(result):
                    await result
            except CAPIError:
                raise
            except Exception as e:
                raise InterceptorError(f"request interceptor failed: {e}") from e

    async def _run_response_interceptors(
        self, request: InterceptedRequest, response: InterceptedResponse
    ) -> None:
        for interceptor in self.response_interceptors:
            try:
                result = interceptor(request, response)
                if inspect.isawaitable(result):
                    await result
            except CAPIError:
                raise
            except Exception as e:
                raise InterceptorError(f"response interceptor failed: {e}") from e

    @staticmethod
    def _encode_body(request: RequestDescriptor) -> Optional[bytes]:
        if request.body is None:
            return None
        if isinstance(request.body, bytes):
            return request.body
        if isinstance(request.body, BaseModel):
            return request.body.model_dump_json(exclude_none=True).encode("utf-8")
        return json.dumps(request.body).encode("utf-8")
