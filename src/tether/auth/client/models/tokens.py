"""Token response and stored token models for OAuth 2.1."""

from __future__ import annotations

import time

from pydantic import BaseModel


class TokenResponse(BaseModel):
    """Successful OAuth 2.1 token response (RFC 6749 Section 5.1)."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None

    def calculate_expires_at(self, now: float | None = None) -> float | None:
        """Calculate absolute expiry timestamp from expires_in.

        Returns:
            Unix timestamp when token expires, or None if no expiry
        """
        if self.expires_in is None:
            return None
        return (time.time() if now is None else now) + self.expires_in


class TokenRecord(BaseModel):
    """A token persisted in the token store.

    Identified by (resource, client_id, authorization_server). A missing
    expires_at means the token does not expire.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_at: float | None = None  # Unix timestamp
    refresh_token: str | None = None
    scope: str | None = None
    resource: str
    client_id: str
    authorization_server: str

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)
