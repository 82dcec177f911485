"""Complete OAuth 2.1 client orchestration for MCP authentication.

Coordinates discovery, registration, authorization, token exchange and
token persistence to hand out bearer tokens for MCP servers.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Protocol

import httpx

from tether.auth.client.models.discovery import AuthorizationServerMetadata
from tether.auth.client.models.errors import RegistrationError, TokenRefreshError
from tether.auth.client.primitives.discovery import ProtectedResourceDiscovery
from tether.auth.client.services.authorization_server import (
    AuthorizationServerResolver,
)
from tether.auth.client.services.browser import open_browser
from tether.auth.client.services.callback import AuthorizationCallbackServer
from tether.auth.client.services.flow import OAuth2FlowManager
from tether.auth.client.services.registration import OAuth2Registration
from tether.auth.client.services.token_store import TokenStore
from tether.auth.client.services.tokens import OAuth2TokenManager
from tether.connections.config import OAuthConfig
from tether.settings import TetherSettings

logger = logging.getLogger(__name__)

BrowserLauncher = Callable[[str], Awaitable[None]]


class CallbackReceiver(Protocol):
    """Listens for the redirect and hands back the authorization code."""

    async def start(self, expected_state: str) -> None: ...

    async def wait(self) -> str: ...

    async def stop(self) -> None: ...


class OAuth2Client:
    """OAuth 2.1 client that turns a resource URL into a bearer token.

    For each request it runs, in order:
    1. Protected resource discovery, using the first authorization server
    2. Authorization server metadata discovery
    3. Client identification: configured client_id, else dynamic registration
    4. A still-valid stored token
    5. Refresh of an expired stored token (a failed refresh drops the record)
    6. The full PKCE authorization code flow through the browser
    """

    def __init__(
        self,
        settings: TetherSettings | None = None,
        token_store: TokenStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        browser_launcher: BrowserLauncher = open_browser,
        callback_factory: Callable[[str], CallbackReceiver] | None = None,
    ):
        """Initialize OAuth client.

        Args:
            settings: Policy values; loaded from the environment if omitted
            token_store: Token persistence; defaults to the configured file
            http_client: Shared HTTP client for every OAuth request
            browser_launcher: Opens the authorization URL for the user
            callback_factory: Builds the callback receiver for a redirect URI
        """
        self.settings = settings or TetherSettings()
        self.token_store = (
            token_store
            if token_store is not None
            else TokenStore(self.settings.token_store_path)
        )
        self.browser_launcher = browser_launcher
        self.callback_factory = callback_factory or (
            lambda redirect_uri: AuthorizationCallbackServer.from_redirect_uri(
                redirect_uri, timeout=self.settings.callback_timeout
            )
        )

        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=self.settings.http_timeout
        )
        self.discovery = ProtectedResourceDiscovery(http_client=self._http_client)
        self.resolver = AuthorizationServerResolver(http_client=self._http_client)
        self.flow_manager = OAuth2FlowManager()

        self._registered_clients: dict[tuple[str, str], str] = {}

    async def initialize(self) -> None:
        """Load persisted tokens and drop the ones that already expired."""
        self.token_store.load()
        self.token_store.sweep_expired()

    async def get_access_token(self, resource_url: str, oauth_config: OAuthConfig) -> str:
        """Return a bearer token for ``resource_url``, authorizing if needed.

        Raises:
            DiscoveryError: If OAuth metadata cannot be discovered
            RegistrationError: If no client_id is configured and registration
                is disabled, unsupported or fails
            AuthorizationError: If the user authorization step fails
            TokenExchangeError: If the code cannot be exchanged for a token
        """
        metadata = await self.discovery.resolve(resource_url)
        auth_server_url = metadata.authorization_servers[0]
        auth_server = await self.resolver.discover(auth_server_url)

        redirect_uri = oauth_config.redirect_uri or self.settings.redirect_uri
        client_id = await self._get_client_id(auth_server, oauth_config, redirect_uri)
        token_manager = OAuth2TokenManager(
            client_secret=oauth_config.client_secret, http_client=self._http_client
        )

        existing = self.token_store.get(resource_url, client_id, auth_server_url)
        if existing is not None:
            logger.debug(f"Using stored token for {resource_url}")
            return existing.access_token

        expired = self.token_store.get_record(resource_url, client_id, auth_server_url)
        if expired is not None and expired.can_refresh():
            try:
                logger.debug(f"Refreshing expired token for {resource_url}")
                token_response = await token_manager.refresh(
                    auth_server.token_endpoint,
                    expired.refresh_token,
                    client_id,
                    resource_url,
                )
                self.token_store.update(
                    resource_url, client_id, auth_server_url, token_response
                )
                return token_response.access_token
            except TokenRefreshError as e:
                logger.warning(f"Token refresh failed, re-authorizing: {e}")
                self.token_store.remove(resource_url, client_id, auth_server_url)

        logger.info(f"Starting OAuth authorization flow for {resource_url}")
        request, state = self.flow_manager.start(
            auth_server.authorization_endpoint,
            client_id,
            redirect_uri,
            resource_url,
            oauth_config.scope,
        )
        receiver = self.callback_factory(redirect_uri)
        # The listener must be bound before the browser can redirect to it
        await receiver.start(state.state)
        try:
            await self.browser_launcher(request.url)
            code = await receiver.wait()
        finally:
            await receiver.stop()

        token_response = await token_manager.exchange_code(
            auth_server.token_endpoint,
            code,
            state.code_verifier,
            state.client_id,
            state.redirect_uri,
            state.resource,
        )
        self.token_store.store(token_response, resource_url, client_id, auth_server_url)
        logger.info(f"Successfully authenticated with {resource_url}")
        return token_response.access_token

    async def _get_client_id(
        self,
        auth_server: AuthorizationServerMetadata,
        oauth_config: OAuthConfig,
        redirect_uri: str,
    ) -> str:
        """Use the configured client_id or register one (once per process)."""
        if oauth_config.client_id:
            return oauth_config.client_id

        registration_endpoint = auth_server.registration_endpoint
        if not oauth_config.auto_register or not registration_endpoint:
            raise RegistrationError(
                "No client_id provided and dynamic registration is unavailable"
            )

        cache_key = (registration_endpoint, redirect_uri)
        if cache_key in self._registered_clients:
            return self._registered_clients[cache_key]

        registration = OAuth2Registration(
            client_name=self.settings.client_name,
            redirect_uri=redirect_uri,
            http_client=self._http_client,
        )
        overrides = {"scope": oauth_config.scope} if oauth_config.scope else None
        credentials = await registration.register(registration_endpoint, overrides)
        self._registered_clients[cache_key] = credentials.client_id
        return credentials.client_id

    def clear_tokens(self) -> None:
        """Delete every stored token."""
        self.token_store.clear_all()

    async def close(self) -> None:
        """Close the shared HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
