"""Request and response interceptors for the transport.

Request interceptors run on every attempt after the standard headers and the
bearer token are in place, and may change the outgoing headers. Response
interceptors run on every attempt once a response arrived or the request
failed at the network level. Either kind may be a plain function or a
coroutine function.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class InterceptedRequest:
    """Outgoing request as seen by interceptors."""

    method: str
    path: str
    url: str
    headers: Dict[str, str]
    attempt: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InterceptedResponse:
    """Outcome of one attempt. ``status_code`` is 0 when no response arrived."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None or self.status_code >= 400


RequestInterceptor = Callable[[InterceptedRequest], Union[None, Awaitable[None]]]
ResponseInterceptor = Callable[
    [InterceptedRequest, InterceptedResponse], Union[None, Awaitable[None]]
]


class HeaderInterceptor:
    """Sets fixed headers on every request, overriding earlier values."""

    def __init__(self, headers: Mapping[str, str]):
        self.headers = dict(headers)

    def __call__(self, request: InterceptedRequest) -> None:
        request.headers.update(self.headers)


class LoggingInterceptor:
    """Logs each attempt and its outcome.

    Use the instance as a request interceptor and ``on_response`` as the
    matching response interceptor.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def __call__(self, request: InterceptedRequest) -> None:
        self.log.debug(
            "API Request",
            extra={"method": request.method, "path": request.path},
        )

    def on_response(
        self, request: InterceptedRequest, response: InterceptedResponse
    ) -> None:
        fields = {
            "method": request.method,
            "path": request.path,
            "status_code": response.status_code,
        }
        if response.error is not None:
            self.log.error("API Response Error", extra=fields)
        else:
            self.log.debug("API Response", extra=fields)


@dataclass
class EndpointMetrics:
    total_requests: int = 0
    total_errors: int = 0
    total_latency: float = 0.0
    last_request_time: Optional[float] = None

    @property
    def average_latency(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.total_latency / self.total_requests


class MetricsCollector:
    """Per-endpoint request counts, error counts and latency.

    Endpoints are keyed as ``"<METHOD> <path>"``. Register
    ``request_interceptor`` and ``response_interceptor`` together; latency is
    only recorded for attempts the request interceptor has seen.
    """

    START_KEY = "metrics_start"

    def __init__(
        self,
        on_change: Optional[Callable[[str, EndpointMetrics], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.metrics: Dict[str, EndpointMetrics] = {}
        self.on_change = on_change
        self._clock = clock

    def get_metrics(self, endpoint: str) -> Optional[EndpointMetrics]:
        return self.metrics.get(endpoint)

    def request_interceptor(self, request: InterceptedRequest) -> None:
        request.metadata[self.START_KEY] = self._clock()

    def response_interceptor(
        self, request: InterceptedRequest, response: InterceptedResponse
    ) -> None:
        endpoint = f"{request.method} {request.path}"
        metrics = self.metrics.setdefault(endpoint, EndpointMetrics())

        now = self._clock()
        metrics.total_requests += 1
        metrics.last_request_time = now

        started = request.metadata.get(self.START_KEY)
        if started is not None:
            metrics.total_latency += now - started

        if response.failed:
            metrics.total_errors += 1

        if self.on_change is not None:
            self.on_change(endpoint, metrics)
