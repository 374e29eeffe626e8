"""Network error classification for the Cloud Controller transport.

Maps httpx exceptions onto the TransportError family and decides which of the
resulting failures are worth another attempt.
"""

import logging
import re

import httpx

from .errors import (
    APIError,
    AuthError,
    ConnectionFailedError,
    DecodeError,
    DNSResolutionError,
    RequestTimeoutError,
    SSLCertificateError,
    TransportError,
)

logger = logging.getLogger(__name__)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


class NetworkErrorHandler:
    """Classifies httpx failures into TransportError subclasses."""

    def __init__(self):
        self._dns_error_patterns = [
            r"name.*resolution.*failed",
            r"name.*or.*service.*not.*known",
            r"nodename.*nor.*servname.*provided",
            r"temporary.*failure.*in.*name.*resolution",
            r"getaddrinfo.*failed",
        ]
        self._connection_error_patterns = [
            r"connection.*refused",
            r"connection.*reset",
            r"network.*is.*unreachable",
            r"no.*route.*to.*host",
        ]
        self._ssl_error_patterns = [
            r"ssl.*certificate.*verification.*failed",
            r"certificate.*verify.*failed",
            r"ssl.*handshake.*failed",
            r"bad.*certificate",
        ]

    def classify_network_error(self, error: Exception) -> TransportError:
        """Classify an httpx exception.

        Args:
            error: The original httpx exception

        Returns:
            TransportError subclass describing the failure; the caller raises
            it chained to the original exception
        """
        error_message = str(error).lower()
        logger.debug(f"Classifying network error {type(error).__name__}: {error}")

        if isinstance(error, httpx.ConnectError):
            return self._classify_connect_error(error, error_message)
        if isinstance(error, httpx.TimeoutException):
            if isinstance(error, httpx.ConnectTimeout) or "connect" in error_message:
                return RequestTimeoutError(f"connection timed out: {error}")
            return RequestTimeoutError(f"request timed out: {error}")
        if isinstance(error, httpx.NetworkError):
            return ConnectionFailedError(f"network error: {error}")
        if isinstance(error, httpx.TransportError):
            return TransportError(f"transport error: {error}")

        return TransportError(f"unknown network error: {error}")

    def _classify_connect_error(
        self, error: httpx.ConnectError, error_message: str
    ) -> TransportError:
        if self._matches(self._dns_error_patterns, error_message):
            return DNSResolutionError(f"cannot resolve API host: {error}")

        if self._matches(self._ssl_error_patterns, error_message):
            return SSLCertificateError(f"TLS certificate verification failed: {error}")

        if self._matches(self._connection_error_patterns, error_message):
            return ConnectionFailedError(f"cannot connect to API: {error}")

        return ConnectionFailedError(f"connection failed: {error}")

    @staticmethod
    def _matches(patterns, error_message: str) -> bool:
        return any(re.search(pattern, error_message) for pattern in patterns)

    def is_error_retryable(self, error: Exception) -> bool:
        """Determine if an error is worth another attempt.

        Connection, DNS and timeout failures are transient. TLS failures,
        authentication failures and decode failures are permanent. API errors
        are retried only for 5xx and 429 statuses.
        """
        if isinstance(error, TransportError):
            return error.is_retryable

        if isinstance(error, (AuthError, DecodeError)):
            return False

        if isinstance(error, APIError):
            return is_retryable_status(error.status_code or 0)

        return False
