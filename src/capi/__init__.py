"""
capi - asyncio client core for the Cloud Foundry v3 (Cloud Controller) API.

Provides token management for static and UAA OAuth2 credentials, an HTTP
transport with retry and token refresh, structured API errors, and the
paginated list contract shared by every resource.
"""

__version__ = "0.1.0"

from .auth import (  # noqa: E402
    FallbackTokenManager,
    OAuth2Config,
    OAuth2TokenManager,
    StaticTokenManager,
    Token,
    TokenManager,
)
from .client import CAPIClient, create_token_manager  # noqa: E402
from .config import ClientConfig  # noqa: E402
from .errors import (  # noqa: E402
    APIError,
    AuthError,
    CAPIError,
    DecodeError,
    ErrorEntry,
    InterceptorError,
    RetriesExhaustedError,
    StaticTokenRefreshError,
    TransportError,
    has_error_code,
    is_not_found,
    is_server_error,
)
from .interceptors import (  # noqa: E402
    HeaderInterceptor,
    InterceptedRequest,
    InterceptedResponse,
    LoggingInterceptor,
    MetricsCollector,
)
from .pagination import ListResponse, PaginationIterator, fetch_all_pages  # noqa: E402
from .query import QueryParams  # noqa: E402
from .transport import RawResponse, RequestDescriptor, RetryPolicy, Transport  # noqa: E402

__all__ = [
    "APIError",
    "AuthError",
    "CAPIClient",
    "CAPIError",
    "ClientConfig",
    "DecodeError",
    "ErrorEntry",
    "FallbackTokenManager",
    "HeaderInterceptor",
    "InterceptedRequest",
    "InterceptedResponse",
    "InterceptorError",
    "ListResponse",
    "LoggingInterceptor",
    "MetricsCollector",
    "OAuth2Config",
    "OAuth2TokenManager",
    "PaginationIterator",
    "QueryParams",
    "RawResponse",
    "RequestDescriptor",
    "RetriesExhaustedError",
    "RetryPolicy",
    "StaticTokenManager",
    "StaticTokenRefreshError",
    "Token",
    "TokenManager",
    "Transport",
    "TransportError",
    "create_token_manager",
    "fetch_all_pages",
    "has_error_code",
    "is_not_found",
    "is_server_error",
]
