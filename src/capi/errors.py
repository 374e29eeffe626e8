"""Error taxonomy and classification for Cloud Controller responses.

Every failure the client surfaces derives from CAPIError. API-level failures
carry the ordered list of entries parsed from the standard error body:

    {"errors": [{"code": 10010, "title": "CF-ResourceNotFound", "detail": "..."}]}

The predicate helpers (is_not_found, is_server_error, has_error_code) match if
any entry matches and look through retry and exception-chaining wrappers.
"""

import json
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

# Cloud Controller error codes
CF_ERROR_SERVICE_UNAVAILABLE = 10001
CF_ERROR_NOT_AUTHENTICATED = 10002
CF_ERROR_NOT_AUTHORIZED = 10003
CF_ERROR_BAD_REQUEST = 10005
CF_ERROR_UNPROCESSABLE_ENTITY = 10008
CF_ERROR_NOT_FOUND = 10010
CF_ERROR_TOO_MANY_REQUESTS = 10013
CF_ERROR_UNIQUENESS = 10016
CF_ERROR_INVALID_RELATION = 10020

# Codes at or above this value indicate a server-side failure
CF_SERVER_ERROR_THRESHOLD = 50000


class CAPIError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(CAPIError):
    """Exception raised when a token cannot be obtained or refreshed."""

    pass


class StaticTokenRefreshError(AuthError):
    """Exception raised when a static token would need a refresh."""

    def __init__(self, message: str = "static token cannot be refreshed"):
        super().__init__(message)


class TransportError(CAPIError):
    """Exception raised for network-level failures."""

    is_retryable: bool = True


class ConnectionFailedError(TransportError):
    """Exception raised when the connection is refused, reset or unreachable."""

    pass


class DNSResolutionError(TransportError):
    """Exception raised when the API host name cannot be resolved."""

    pass


class RequestTimeoutError(TransportError):
    """Exception raised when a request exceeds its timeout."""

    pass


class SSLCertificateError(TransportError):
    """Exception raised when TLS verification fails."""

    is_retryable = False


class DecodeError(CAPIError):
    """Exception raised when a response body does not match the expected shape."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.method = method
        self.path = path


class InterceptorError(CAPIError):
    """Exception raised when a request or response interceptor fails."""

    pass


class RetriesExhaustedError(CAPIError):
    """Exception raised when every allowed attempt failed with a transient error."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(
            f"request failed after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class ErrorEntry:
    """A single entry of the standard error body."""

    code: int
    title: str = ""
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.title}: {self.detail} (code: {self.code})"


class APIError(CAPIError):
    """Exception raised for non-success API responses."""

    def __init__(
        self,
        errors: List[ErrorEntry],
        status_code: int,
        method: Optional[str] = None,
        path: Optional[str] = None,
    ):
        self.errors = list(errors)
        self.method = method
        self.path = path
        super().__init__(self._render(), status_code=status_code)

    def _render(self) -> str:
        if not self.errors:
            return "unknown error"
        if len(self.errors) == 1:
            return str(self.errors[0])
        return "multiple errors: " + "; ".join(str(e) for e in self.errors)

    def has_code(self, code: int) -> bool:
        return any(entry.code == code for entry in self.errors)


def parse_error_response(
    status_code: int,
    content: bytes,
    method: Optional[str] = None,
    path: Optional[str] = None,
) -> APIError:
    """Build an APIError from a non-success response body.

    A body that is not JSON, or that lacks an ``errors`` list, yields a single
    synthetic entry with code 0 so that no code-based predicate matches it.

    Args:
        status_code: HTTP status of the response
        content: Raw response body
        method: Request method, kept for diagnostics
        path: Request path, kept for diagnostics

    Returns:
        APIError carrying the parsed entries
    """
    text = content.decode("utf-8", errors="replace") if content else ""
    entries: List[ErrorEntry] = []

    try:
        payload = json.loads(text) if text else None
    except json.JSONDecodeError:
        payload = None

    raw_errors = payload.get("errors") if isinstance(payload, dict) else None
    if isinstance(raw_errors, list):
        for raw in raw_errors:
            if not isinstance(raw, dict):
                continue
            try:
                code = int(raw.get("code", 0))
            except (TypeError, ValueError):
                code = 0
            entries.append(
                ErrorEntry(
                    code=code,
                    title=str(raw.get("title", "")),
                    detail=str(raw.get("detail", "")),
                )
            )

    if not entries:
        entries.append(
            ErrorEntry(code=0, title=f"HTTP {status_code}", detail=text.strip())
        )

    return APIError(entries, status_code=status_code, method=method, path=path)


def _api_errors(err: Optional[BaseException]) -> Iterator[APIError]:
    """Yield every APIError reachable through retry wrappers and cause chains."""
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, APIError):
            yield err
        if isinstance(err, RetriesExhaustedError):
            err = err.last_error
        else:
            err = err.__cause__


def has_error_code(err: Any, code: int) -> bool:
    """Check whether any error entry carries the given code."""
    if not isinstance(err, BaseException):
        return False
    return any(api_error.has_code(code) for api_error in _api_errors(err))


def is_not_found(err: Any) -> bool:
    return has_error_code(err, CF_ERROR_NOT_FOUND)


def is_unauthorized(err: Any) -> bool:
    return has_error_code(err, CF_ERROR_NOT_AUTHENTICATED)


def is_forbidden(err: Any) -> bool:
    return has_error_code(err, CF_ERROR_NOT_AUTHORIZED)


def is_server_error(err: Any) -> bool:
    """Check whether any error entry carries a server-side code (>= 50000)."""
    if not isinstance(err, BaseException):
        return False
    return any(
        entry.code >= CF_SERVER_ERROR_THRESHOLD
        for api_error in _api_errors(err)
        for entry in api_error.errors
    )
