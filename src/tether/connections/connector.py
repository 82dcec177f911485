"""Opens authorized connections to remote MCP servers."""

from __future__ import annotations

import logging

from tether.auth.client.models.errors import DiscoveryError
from tether.auth.client.oauth_client import OAuth2Client
from tether.connections.config import ServerConfig
from tether.connections.transport import (
    ConnectionOpener,
    ResourceConnection,
    open_http_connection,
)
from tether.settings import TetherSettings

logger = logging.getLogger(__name__)


class OAuthConnector:
    """Builds the header map for a server and opens the connection.

    When OAuth is enabled the bearer token comes from ``OAuth2Client``, which
    may run discovery, registration, refresh or a full authorization flow.
    """

    def __init__(
        self,
        oauth_client: OAuth2Client,
        settings: TetherSettings | None = None,
        opener: ConnectionOpener = open_http_connection,
    ):
        self.oauth_client = oauth_client
        self.settings = settings or oauth_client.settings
        self._opener = opener

    async def connect(self, server_config: ServerConfig) -> ResourceConnection:
        """Open a connection to the server described by ``server_config``.

        Raises:
            ValueError: If the config has no HTTP entry point
            DiscoveryError: If OAuth discovery fails and unauthenticated
                fallback is disabled
        """
        if server_config.type == "stdio":
            raise ValueError("stdio servers are not reached over HTTP")

        url = server_config.entry_point
        if not url or not url.startswith(("http://", "https://")):
            raise ValueError(f"'entry_point' must be a valid HTTP URL, got {url!r}")

        headers = dict(server_config.headers)
        oauth_config = server_config.oauth_config

        if oauth_config.enabled:
            try:
                token = await self.oauth_client.get_access_token(url, oauth_config)
            except DiscoveryError as e:
                if not self.settings.allow_unauthenticated_fallback:
                    logger.error(f"OAuth discovery failed for {url}: {e}")
                    raise
                logger.warning(f"OAuth discovery failed, connecting without a token: {e}")
            else:
                headers["Authorization"] = f"Bearer {token}"

        logger.debug(f"Opening {server_config.type} connection to {url}")
        return await self._opener(url, headers)
