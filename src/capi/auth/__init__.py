"""Authentication: bearer tokens and the managers that produce them."""

from .jwt_claims import TokenValidationError, decode_claims, get_expiry
from .managers import (
    FallbackTokenManager,
    OAuth2TokenManager,
    StaticTokenManager,
    TokenManager,
    uaa_token_manager,
)
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

__all__ = [
    "DEFAULT_CLIENT_ID",
    "DEFAULT_EXPIRATION_BUFFER",
    "DEFAULT_SCOPES",
    "FallbackTokenManager",
    "GRANT_CLIENT_CREDENTIALS",
    "GRANT_PASSWORD",
    "GRANT_REFRESH_TOKEN",
    "OAuth2Config",
    "OAuth2TokenManager",
    "StaticTokenManager",
    "Token",
    "TokenEndpoint",
    "TokenManager",
    "TokenValidationError",
    "decode_claims",
    "get_expiry",
    "token_url_for",
    "uaa_token_manager",
]
