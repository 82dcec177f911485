"""OAuth 2.1 authorization flow service.

Builds PKCE-protected authorization URLs and validates what comes back on
the redirect URI.
"""

from __future__ import annotations

import logging
import secrets
from typing import Mapping
from urllib.parse import urlencode

from tether.auth.client.models.errors import AuthorizationError
from tether.auth.client.models.flow import AuthorizationRequest, AuthorizationResponse
from tether.auth.client.models.security import AuthorizationState
from tether.auth.client.primitives.pkce import PKCEManager, generate_state

logger = logging.getLogger(__name__)


class OAuth2FlowManager:
    """Starts and finishes OAuth 2.1 authorization code flows.

    Handles:
    - PKCE parameter generation (S256 only)
    - State parameter generation and validation (CSRF protection)
    - Authorization URL construction with the RFC 8707 resource parameter
    """

    def __init__(self, pkce_manager: PKCEManager | None = None):
        self._pkce_manager = pkce_manager or PKCEManager()

    def build_authorization_request(
        self,
        authorization_endpoint: str,
        client_id: str,
        redirect_uri: str,
        resource: str,
        code_challenge: str,
        scope: str | None = None,
    ) -> AuthorizationRequest:
        """Build the authorization URL with a fresh state value.

        Args:
            authorization_endpoint: Authorization server endpoint
            client_id: Registered or configured client ID
            redirect_uri: Where the server sends the user back to
            resource: Resource indicator (RFC 8707)
            code_challenge: S256 PKCE challenge
            scope: Optional scope, omitted from the URL when not given

        Returns:
            The URL to open and the state it carries
        """
        state = generate_state()
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "resource": resource,
        }
        if scope:
            params["scope"] = scope

        separator = "&" if "?" in authorization_endpoint else "?"
        url = f"{authorization_endpoint}{separator}{urlencode(params)}"
        return AuthorizationRequest(url=url, state=state)

    def start(
        self,
        authorization_endpoint: str,
        client_id: str,
        redirect_uri: str,
        resource: str,
        scope: str | None = None,
    ) -> tuple[AuthorizationRequest, AuthorizationState]:
        """Generate PKCE parameters and the authorization request together.

        Returns:
            The request to send the user to, and the state needed to finish
            the attempt once the callback arrives
        """
        pkce = self._pkce_manager.generate_pair()
        request = self.build_authorization_request(
            authorization_endpoint,
            client_id,
            redirect_uri,
            resource,
            pkce.code_challenge,
            scope,
        )
        logger.debug(f"Starting authorization flow for client {client_id}")

        return request, AuthorizationState(
            state=request.state,
            code_verifier=pkce.code_verifier,
            redirect_uri=redirect_uri,
            resource=resource,
            client_id=client_id,
        )

    def validate_callback(
        self, params: Mapping[str, str], expected_state: str
    ) -> str:
        """Validate callback query parameters and return the code.

        Raises:
            AuthorizationError: On a reported OAuth error, a state mismatch,
                or a missing authorization code
        """
        response = AuthorizationResponse.from_query(params)

        if response.is_error():
            description = f" ({response.error_description})" if response.error_description else ""
            raise AuthorizationError(
                f"Authorization failed: {response.error}{description}"
            )

        if response.state is None or not secrets.compare_digest(
            response.state, expected_state
        ):
            raise AuthorizationError("State parameter mismatch")

        if response.code is None:
            raise AuthorizationError("No authorization code received")

        return response.code
