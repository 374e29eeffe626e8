"""Bearer token value held by the token managers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

# Tokens are treated as expired this many seconds before their real expiry
DEFAULT_EXPIRATION_BUFFER = 30.0


@dataclass(frozen=True)
class Token:
    """An access token and its optional expiry.

    Instances are never mutated; managers replace the whole value on refresh.
    ``expires_at`` of None means the expiry is unknown and the token is
    considered valid until the server rejects it.
    """

    access_token: str
    token_type: str = "bearer"
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_valid(
        self,
        buffer_seconds: float = DEFAULT_EXPIRATION_BUFFER,
        now: Optional[datetime] = None,
    ) -> bool:
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        current = now or datetime.now(timezone.utc)
        return current + timedelta(seconds=buffer_seconds) < self.expires_at

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"


def expiry_from_seconds(
    expires_in: Optional[float], now: Optional[datetime] = None
) -> Optional[datetime]:
    """Convert an ``expires_in`` lifetime into an absolute UTC expiry."""
    if expires_in is None:
        return None
    current = now or datetime.now(timezone.utc)
    return current + timedelta(seconds=float(expires_in))
