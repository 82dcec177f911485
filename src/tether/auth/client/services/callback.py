"""Local HTTP listener for the OAuth redirect.

Serves ``GET /callback?code=&state=&error=`` on the host and port of the
redirect URI, answers with a small HTML page and shuts down after the first
callback. Only one authorization attempt is expected in flight at a time.

The listening socket is bound before uvicorn starts, so a busy port surfaces
as an ``AuthorizationError`` and the port is ready before the browser opens.
"""

from __future__ import annotations

import asyncio
import html
import logging
import socket
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from tether.auth.client.models.errors import AuthorizationError, AuthorizationTimeout
from tether.auth.client.services.flow import OAuth2FlowManager

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_PORT = 8080
_STARTUP_POLL_INTERVAL = 0.01


def _html_page(title: str, message: str) -> str:
    return (
        f"<html><body><h1>{html.escape(title)}</h1>"
        f"<p>{html.escape(message)}</p></body></html>"
    )


class AuthorizationCallbackServer:
    """Waits for the authorization server to redirect the browser back.

    ``start()`` binds the port and begins serving, ``wait()`` returns the
    code and ``stop()`` shuts the listener down. ``wait_for_code()`` runs
    all three.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = DEFAULT_CALLBACK_PORT,
        callback_path: str = "/callback",
        timeout: float = 300.0,
        flow_manager: OAuth2FlowManager | None = None,
    ):
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self.timeout = timeout
        self._flow_manager = flow_manager or OAuth2FlowManager()

        self.bound_port: int | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._result: asyncio.Future[str] | None = None

    @classmethod
    def from_redirect_uri(
        cls, redirect_uri: str, timeout: float = 300.0
    ) -> AuthorizationCallbackServer:
        """Bind to the host, port and path named by a redirect URI."""
        parsed = urlparse(redirect_uri)
        return cls(
            host=parsed.hostname or "localhost",
            port=parsed.port or DEFAULT_CALLBACK_PORT,
            callback_path=parsed.path or "/callback",
            timeout=timeout,
        )

    @property
    def is_serving(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    def build_app(self, expected_state: str, result: asyncio.Future[str]) -> Starlette:
        """Build the callback app that resolves ``result`` on the first hit."""

        async def handle_callback(request: Request) -> Response:
            try:
                code = self._flow_manager.validate_callback(
                    dict(request.query_params), expected_state
                )
            except AuthorizationError as e:
                logger.warning(f"Authorization callback rejected: {e}")
                if not result.done():
                    result.set_exception(e)
                return HTMLResponse(_html_page("Authorization Error", str(e)))

            if not result.done():
                result.set_result(code)
            return HTMLResponse(
                _html_page("Authorization Successful", "You can close this window.")
            )

        return Starlette(routes=[Route(self.callback_path, handle_callback)])

    async def start(self, expected_state: str) -> None:
        """Bind the callback port and serve until ``stop()``.

        Returns once the listener accepts connections.

        Raises:
            AuthorizationError: If the port cannot be bound or the server
                fails to start, or a listener is already running
        """
        if self._serve_task is not None:
            raise AuthorizationError("Callback server is already running")

        sock = self._bind()
        self.bound_port = sock.getsockname()[1]
        self._result = asyncio.get_running_loop().create_future()
        self._server = uvicorn.Server(
            uvicorn.Config(
                app=self.build_app(expected_state, self._result),
                host=self.host,
                port=self.bound_port,
                lifespan="off",
                log_level="warning",
            )
        )
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._serve_task.done():
                error = (
                    None if self._serve_task.cancelled() else self._serve_task.exception()
                )
                sock.close()
                self._reset()
                raise AuthorizationError(
                    f"Callback server failed to start on {self.host}:{self.bound_port}"
                ) from error
            await asyncio.sleep(_STARTUP_POLL_INTERVAL)

        logger.info(
            f"Callback server listening on http://{self.host}:{self.bound_port}"
            f"{self.callback_path}"
        )

    async def wait(self) -> str:
        """Return the authorization code once the callback arrives.

        Raises:
            AuthorizationTimeout: If no callback arrives within the timeout
            AuthorizationError: If the listener is not running, or the
                callback reports an error, carries the wrong state, or has
                no code
        """
        if self._result is None:
            raise AuthorizationError("Callback server is not running")

        try:
            return await asyncio.wait_for(self._result, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise AuthorizationTimeout(
                f"No authorization callback received within {self.timeout} seconds"
            ) from None

    async def stop(self) -> None:
        """Shut the listener down. Safe to call when not running."""
        if self._server is None or self._serve_task is None:
            return

        self._server.should_exit = True
        try:
            await self._serve_task
        finally:
            self._reset()
        logger.debug("Callback server stopped")

    async def wait_for_code(self, expected_state: str) -> str:
        """Serve until a callback arrives and return its authorization code.

        Raises:
            AuthorizationTimeout: If no callback arrives within the timeout
            AuthorizationError: If the port cannot be bound, or the callback
                reports an error, carries the wrong state, or has no code
        """
        await self.start(expected_state)
        try:
            return await self.wait()
        finally:
            await self.stop()

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        try:
            return socket.create_server((self.host, self.port), family=family)
        except OSError as e:
            raise AuthorizationError(
                f"Cannot listen for the authorization callback on "
                f"{self.host}:{self.port}: {e}"
            ) from e

    def _reset(self) -> None:
        self._server = None
        self._serve_task = None
        self._result = None
