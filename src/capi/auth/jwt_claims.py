"""JWT claim extraction for UAA access tokens.

Reads the payload of a JWT without verifying its signature; verification is
the API's job. Used only to learn when a token expires and whom it belongs to.
"""

import base64
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, cast


class TokenValidationError(Exception):
    """Exception raised when a token is not a decodable JWT."""

    pass


def decode_claims(token: str) -> Dict[str, Any]:
    """Decode the JWT payload without signature verification.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenValidationError: If token format is invalid
    """
    if not token or not isinstance(token, str):
        raise TokenValidationError("Token must be a non-empty string")

    parts = token.split(".")
    if len(parts) != 3:
        raise TokenValidationError(
            f"Invalid JWT format: expected 3 parts, got {len(parts)}"
        )

    payload_part = parts[1]
    padding = 4 - (len(payload_part) % 4)
    if padding != 4:
        payload_part += "=" * padding

    try:
        payload_bytes = base64.urlsafe_b64decode(payload_part)
        payload = json.loads(payload_bytes.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise TokenValidationError(f"Failed to decode JWT payload: {e}") from e

    if not isinstance(payload, dict):
        raise TokenValidationError("JWT payload is not a JSON object")

    return cast(Dict[str, Any], payload)


def get_expiry(token: str) -> Optional[datetime]:
    """Get the expiration time of a JWT.

    Returns:
        Expiration datetime in UTC, or None if there is no ``exp`` claim

    Raises:
        TokenValidationError: If token format or ``exp`` claim is invalid
    """
    exp_claim = decode_claims(token).get("exp")
    if exp_claim is None:
        return None

    try:
        exp_timestamp = float(exp_claim)
    except (ValueError, TypeError) as e:
        raise TokenValidationError(
            f"Invalid expiration timestamp format: {exp_claim}"
        ) from e

    return datetime.fromtimestamp(exp_timestamp, tz=timezone.utc)


def try_get_expiry(token: str) -> Optional[datetime]:
    """Like get_expiry, but returns None for opaque (non-JWT) tokens."""
    try:
        return get_expiry(token)
    except TokenValidationError:
        return None
