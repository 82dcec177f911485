"""Client registration models for OAuth 2.0 Dynamic Client Registration."""

from __future__ import annotations

import time

from pydantic import BaseModel


class ClientCredentials(BaseModel):
    """OAuth 2.0 Client Credentials from registration response (RFC 7591)."""

    client_id: str
    client_secret: str | None = None  # None for public clients
    registration_access_token: str | None = None
    registration_client_uri: str | None = None
    client_id_issued_at: int | None = None
    client_secret_expires_at: int | None = None

    def is_expired(self) -> bool:
        """Check if client credentials have expired.

        RFC 7591 uses 0 for secrets that never expire.
        """
        if not self.client_secret_expires_at:
            return False
        return time.time() >= self.client_secret_expires_at
