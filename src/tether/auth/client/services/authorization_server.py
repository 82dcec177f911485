"""OAuth 2.1 authorization server metadata discovery service.

Implements RFC 8414 (Authorization Server Metadata) with the OpenID Connect
Discovery fallbacks many providers rely on.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from tether.auth.client.models.discovery import AuthorizationServerMetadata
from tether.auth.client.models.errors import AuthorizationServerMetadataError

logger = logging.getLogger(__name__)


class AuthorizationServerResolver:
    """Resolves Authorization Server Metadata for an issuer URL.

    Candidates are tried one after another until one returns a successful,
    parseable body that advertises both endpoints and S256 PKCE support.
    """

    def __init__(
        self, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None
    ):
        """Initialize the resolver.

        Args:
            timeout: HTTP request timeout in seconds
            http_client: Shared client to use instead of creating one
        """
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def discover(self, issuer_url: str) -> AuthorizationServerMetadata:
        """Discover authorization server metadata.

        Args:
            issuer_url: Authorization server (issuer) URL

        Returns:
            Validated authorization server metadata

        Raises:
            AuthorizationServerMetadataError: If no candidate yields usable
                metadata, including servers without S256 support
        """
        discovery_urls = self.build_discovery_urls(issuer_url)

        for url in discovery_urls:
            try:
                logger.debug(f"Trying authorization server metadata discovery: {url}")
                response = await self._http_client.get(url)
            except httpx.HTTPError as e:
                logger.debug(f"Request to {url} failed: {e}")
                continue

            if not 200 <= response.status_code < 300:
                logger.debug(f"{url} responded with {response.status_code}")
                continue

            try:
                metadata = AuthorizationServerMetadata.model_validate_json(
                    response.text
                )
            except ValidationError as e:
                logger.debug(f"Unusable authorization server metadata from {url}: {e}")
                continue

            logger.info(f"Discovered authorization server metadata from: {url}")
            return metadata

        raise AuthorizationServerMetadataError(
            f"Failed to discover authorization server metadata for {issuer_url}. "
            f"Tried URLs: {discovery_urls}"
        )

    def build_discovery_urls(self, issuer_url: str) -> list[str]:
        """Build the ordered list of metadata URLs for an issuer.

        Issuers with a path component get the path-inserted RFC 8414 and OIDC
        forms plus the OIDC path-appended form; root issuers get the two
        root documents.
        """
        parsed = urlparse(issuer_url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        path = "/".join(segment for segment in parsed.path.split("/") if segment)

        if path:
            return [
                f"{origin}/.well-known/oauth-authorization-server/{path}",
                f"{origin}/.well-known/openid-configuration/{path}",
                f"{origin}/{path}/.well-known/openid-configuration",
            ]

        return [
            f"{origin}/.well-known/oauth-authorization-server",
            f"{origin}/.well-known/openid-configuration",
        ]

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()
