"""Resource connection handles.

The pool only needs a handle it can close and that reports when it closes
or fails. ``HttpResourceConnection`` is the HTTP implementation: an httpx
client bound to the server URL with the header map authorization built.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

import httpx

logger = logging.getLogger(__name__)

CloseCallback = Callable[[], None]
ErrorCallback = Callable[[BaseException], None]


class ResourceConnection(Protocol):
    """A connected, closable handle with close/error notification hooks."""

    @property
    def is_open(self) -> bool: ...

    def on_close(self, callback: CloseCallback) -> None: ...

    def on_error(self, callback: ErrorCallback) -> None: ...

    async def close(self) -> None: ...


ConnectionOpener = Callable[[str, dict[str, str]], Awaitable[ResourceConnection]]


class HttpResourceConnection:
    """HTTP connection to an MCP server carrying fixed request headers."""

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self._http_client = http_client or httpx.AsyncClient(
            headers=self.headers, timeout=timeout
        )
        self._closed = False
        self._close_callbacks: list[CloseCallback] = []
        self._error_callbacks: list[ErrorCallback] = []

    @property
    def is_open(self) -> bool:
        return not self._closed

    def on_close(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    async def send(self, payload: dict[str, Any]) -> httpx.Response:
        """POST a JSON message to the server URL.

        Raises:
            ConnectionError: If the connection is closed or the request fails
        """
        if self._closed:
            raise ConnectionError(f"Connection to {self.url} is closed")

        try:
            return await self._http_client.post(
                self.url, json=payload, headers=self.headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Request to {self.url} failed: {e}")
            self._notify_error(e)
            raise ConnectionError(f"HTTP request to {self.url} failed: {e}") from e

    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        await self._http_client.aclose()
        logger.debug(f"Connection to {self.url} closed")
        for callback in self._close_callbacks:
            callback()

    def _notify_error(self, error: BaseException) -> None:
        for callback in self._error_callbacks:
            callback(error)


async def open_http_connection(
    url: str, headers: dict[str, str]
) -> HttpResourceConnection:
    """Default opener for http and sse servers."""
    return HttpResourceConnection(url, headers)
