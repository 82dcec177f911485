"""OAuth 2.1 protected resource discovery primitive.

Implements RFC 9728 (Protected Resource Metadata) discovery for MCP servers:
find out which authorization servers protect a resource URL.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from tether.auth.client.models.discovery import ProtectedResourceMetadata
from tether.auth.client.models.errors import ProtectedResourceMetadataError
from tether.auth.client.primitives.challenge import extract_resource_metadata

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/oauth-protected-resource"


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def _path_component(url: str) -> str:
    """Non-empty path segments of a URL joined with '/', or ''."""
    segments = [segment for segment in urlparse(url).path.split("/") if segment]
    return "/".join(segments)


class ProtectedResourceDiscovery:
    """Resolves Protected Resource Metadata for an MCP server URL.

    Three strictly ordered steps, each attempted only if every earlier one
    failed to produce metadata with at least one authorization server:

    1. Direct: the well-known document at the origin of the resource URL.
    2. 401 challenge: GET the resource itself and follow the
       ``resource_metadata`` hint of a Bearer challenge.
    3. Fallback paths: root and path-aware well-known variants, with and
       without a trailing slash.
    """

    def __init__(
        self, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None
    ):
        """Initialize protected resource discovery.

        Args:
            timeout: HTTP request timeout in seconds
            http_client: Shared client to use instead of creating one
        """
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def resolve(self, resource_url: str) -> ProtectedResourceMetadata:
        """Discover protected resource metadata for a resource URL.

        Args:
            resource_url: MCP server URL

        Returns:
            The first valid protected resource metadata found

        Raises:
            ProtectedResourceMetadataError: If every discovery step fails
        """
        logger.debug(f"Starting protected resource discovery for {resource_url}")
        tried: list[str] = []

        direct_url = _origin(resource_url) + WELL_KNOWN_PATH
        tried.append(direct_url)
        metadata = await self._fetch_metadata(direct_url)
        if metadata is not None:
            logger.info(f"Discovered protected resource metadata at {direct_url}")
            return metadata

        tried.append(resource_url)
        metadata = await self._discover_from_challenge(resource_url)
        if metadata is not None:
            return metadata

        for url in self.build_fallback_urls(resource_url):
            tried.append(url)
            metadata = await self._fetch_metadata(url)
            if metadata is not None:
                logger.info(f"Discovered protected resource metadata at {url}")
                return metadata

        raise ProtectedResourceMetadataError(
            f"Failed to discover protected resource metadata for {resource_url}. "
            f"Tried {len(tried)} locations: {tried}"
        )

    def build_fallback_urls(self, resource_url: str) -> list[str]:
        """Build the ordered fallback metadata URLs for a resource URL."""
        origin = _origin(resource_url)
        urls = [f"{origin}{WELL_KNOWN_PATH}", f"{origin}{WELL_KNOWN_PATH}/"]

        path = _path_component(resource_url)
        if path:
            urls.append(f"{origin}{WELL_KNOWN_PATH}/{path}")
            urls.append(f"{origin}{WELL_KNOWN_PATH}/{path}/")

        return urls

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def _discover_from_challenge(
        self, resource_url: str
    ) -> ProtectedResourceMetadata | None:
        """Follow the resource_metadata hint of a 401 Bearer challenge."""
        try:
            response = await self._http_client.get(
                resource_url, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as e:
            logger.debug(f"401 challenge request to {resource_url} failed: {e}")
            return None

        if response.status_code != 401:
            logger.debug(
                f"{resource_url} responded with {response.status_code}, not 401"
            )
            return None

        www_authenticate = response.headers.get("WWW-Authenticate")
        if not www_authenticate:
            logger.debug("No WWW-Authenticate header in 401 response")
            return None

        metadata_url = extract_resource_metadata(www_authenticate)
        if not metadata_url:
            return None

        metadata = await self._fetch_metadata(metadata_url)
        if metadata is not None:
            logger.info(
                f"Discovered protected resource metadata via challenge: {metadata_url}"
            )
        return metadata

    async def _fetch_metadata(self, metadata_url: str) -> ProtectedResourceMetadata | None:
        """Fetch and validate one metadata document.

        Returns:
            Parsed metadata, or None if the fetch or validation failed
        """
        try:
            logger.debug(f"Fetching protected resource metadata from: {metadata_url}")
            response = await self._http_client.get(metadata_url)
        except httpx.HTTPError as e:
            logger.debug(f"Request to {metadata_url} failed: {e}")
            return None

        if not 200 <= response.status_code < 300:
            logger.debug(f"{metadata_url} responded with {response.status_code}")
            return None

        try:
            return ProtectedResourceMetadata.model_validate_json(response.text)
        except ValidationError as e:
            logger.debug(f"Invalid protected resource metadata from {metadata_url}: {e}")
            return None
