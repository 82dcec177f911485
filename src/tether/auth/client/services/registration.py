"""OAuth 2.1 dynamic client registration service.

Implements RFC 7591 (OAuth 2.0 Dynamic Client Registration Protocol)
to automatically register MCP clients with authorization servers.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tether.auth.client.models.errors import RegistrationError
from tether.auth.client.models.registration import ClientCredentials

logger = logging.getLogger(__name__)


class OAuth2Registration:
    """Handles OAuth 2.1 dynamic client registration for MCP authentication.

    Registers public clients (``token_endpoint_auth_method="none"``) using
    the authorization code grant, so no client secret is needed.
    """

    def __init__(
        self,
        client_name: str = "MCP Client",
        redirect_uri: str = "http://localhost:8080/callback",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize OAuth registration.

        Args:
            client_name: Default client_name sent to the server
            redirect_uri: Default redirect URI sent to the server
            timeout: HTTP request timeout in seconds
            http_client: Shared client to use instead of creating one
        """
        self.client_name = client_name
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    def build_client_metadata(
        self, overrides: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Merge the default client metadata with caller overrides."""
        metadata: dict[str, Any] = {
            "client_name": self.client_name,
            "redirect_uris": [self.redirect_uri],
            "grant_types": ["authorization_code"],
            "response_types": ["code"],
            "token_endpoint_auth_method": "none",
        }
        metadata.update(overrides or {})
        return metadata

    async def register(
        self, registration_endpoint: str, overrides: dict[str, Any] | None = None
    ) -> ClientCredentials:
        """Register a new OAuth client with the authorization server.

        Args:
            registration_endpoint: Client registration endpoint URL
            overrides: Client metadata that replaces the defaults key by key

        Returns:
            Credentials issued by the server

        Raises:
            RegistrationError: If the request fails or is rejected
        """
        logger.debug(f"Registering client at {registration_endpoint}")

        try:
            response = await self._http_client.post(
                registration_endpoint,
                json=self.build_client_metadata(overrides),
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise RegistrationError(f"HTTP error during registration: {e}") from e

        if not 200 <= response.status_code < 300:
            self._raise_registration_error(response)

        try:
            credentials = ClientCredentials.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RegistrationError(
                f"Invalid registration response format: {e}",
                status_code=response.status_code,
            ) from e

        logger.info(
            f"Successfully registered client {credentials.client_id} "
            f"at {registration_endpoint}"
        )
        return credentials

    def _raise_registration_error(self, response: httpx.Response) -> None:
        """Raise a RegistrationError describing a rejected registration.

        Raises:
            RegistrationError: Always, carrying the response status
        """
        status = response.status_code
        try:
            error_data = response.json()
            error_code = error_data.get("error", "unknown_error")
            error_description = error_data.get(
                "error_description", "No description provided"
            )
            detail = f"{error_code} - {error_description}"
        except (ValueError, AttributeError):
            detail = response.text

        logger.error(f"Client registration failed with {status}: {detail}")
        raise RegistrationError(f"Registration failed ({status}): {detail}", status)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
