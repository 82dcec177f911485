"""OAuth 2.1 token exchange and refresh service.

Implements RFC 6749 token endpoint interactions with PKCE (RFC 7636)
and Resource Indicators (RFC 8707) for MCP authentication.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from tether.auth.client.models.errors import (
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from tether.auth.client.models.tokens import TokenResponse

logger = logging.getLogger(__name__)


class OAuth2TokenManager:
    """Manages OAuth 2.1 token exchange and refresh operations.

    Requests are sent as application/x-www-form-urlencoded as OAuth 2.1
    requires. Both grants always carry the resource parameter.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client_secret: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OAuth token manager.

        Args:
            timeout: HTTP request timeout in seconds
            client_secret: Secret for confidential clients, sent in the body
            http_client: Shared client to use instead of creating one
        """
        self.timeout = timeout
        self.client_secret = client_secret
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def exchange_code(
        self,
        token_endpoint: str,
        code: str,
        code_verifier: str,
        client_id: str,
        redirect_uri: str,
        resource: str,
    ) -> TokenResponse:
        """Exchange an authorization code for an access token.

        Implements RFC 6749 Section 4.1.3 with the PKCE code_verifier.

        Raises:
            TokenExchangeError: If the token endpoint rejects the request or
                cannot be reached
        """
        logger.debug(f"Exchanging authorization code at {token_endpoint}")
        form_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "code_verifier": code_verifier,
            "resource": resource,
        }
        return await self._request_token(token_endpoint, form_data, TokenExchangeError)

    async def refresh(
        self,
        token_endpoint: str,
        refresh_token: str,
        client_id: str,
        resource: str,
    ) -> TokenResponse:
        """Refresh an access token using a refresh token.

        Implements RFC 6749 Section 6.

        Raises:
            TokenRefreshError: If the token endpoint rejects the request or
                cannot be reached
        """
        logger.debug(f"Refreshing access token at {token_endpoint}")
        form_data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "resource": resource,
        }
        return await self._request_token(token_endpoint, form_data, TokenRefreshError)

    async def _request_token(
        self,
        token_endpoint: str,
        form_data: dict[str, str],
        error_class: type[TokenError],
    ) -> TokenResponse:
        if self.client_secret:
            form_data["client_secret"] = self.client_secret

        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}, resource={form_data['resource']}"
        )

        try:
            response = await self._http_client.post(
                token_endpoint,
                data=form_data,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise error_class(f"HTTP error calling token endpoint: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.warning(
                f"Token request ({form_data['grant_type']}) failed with "
                f"{response.status_code}"
            )
            raise error_class(
                f"Token request failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise error_class(
                f"Invalid token response format: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        logger.info(f"Token request ({form_data['grant_type']}) successful")
        return token_response

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
