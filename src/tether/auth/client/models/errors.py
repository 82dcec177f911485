"""Exception hierarchy for OAuth 2.1 authentication errors.

Provides specific exception types for different failure modes so callers can
decide between falling back, re-authorizing, or surfacing the failure.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all OAuth 2.1 related errors."""

    pass


class DiscoveryError(OAuth2Error):
    """Raised when OAuth metadata discovery fails."""

    pass


class ProtectedResourceMetadataError(DiscoveryError):
    """Raised when every Protected Resource Metadata discovery step fails."""

    pass


class AuthorizationServerMetadataError(DiscoveryError):
    """Raised when no Authorization Server Metadata candidate is usable."""

    pass


class RegistrationError(OAuth2Error):
    """Raised when dynamic client registration fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TokenError(OAuth2Error):
    """Raised when token endpoint operations fail."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenExchangeError(TokenError):
    """Raised when authorization code to token exchange fails."""

    pass


class TokenRefreshError(TokenError):
    """Raised when token refresh fails."""

    pass


class TokenStoreError(OAuth2Error):
    """Raised when a token store mutation refers to a missing record."""

    pass


class AuthorizationError(OAuth2Error):
    """Raised when user authorization fails.

    Covers a reported OAuth error, a state mismatch, and a callback without
    an authorization code.
    """

    pass


class AuthorizationTimeout(AuthorizationError):
    """Raised when no authorization callback arrives in time."""

    pass


class PersistenceWarning(UserWarning):
    """Emitted when the token store file cannot be read back."""

    pass
