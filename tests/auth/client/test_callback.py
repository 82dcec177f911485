"""Tests for the local authorization callback listener."""

import asyncio
import socket

import httpx
import pytest

from tether.auth.client.models.errors import AuthorizationError, AuthorizationTimeout
from tether.auth.client.services.callback import AuthorizationCallbackServer


async def hit_callback(server, expected_state, query):
    result = asyncio.get_running_loop().create_future()
    app = server.build_app(expected_state, result)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://localhost") as client:
        response = await client.get(server.callback_path, params=query)
    return response, result


class TestCallbackApp:
    def setup_method(self):
        self.server = AuthorizationCallbackServer()

    async def test_success_resolves_code(self):
        # Act
        response, result = await hit_callback(
            self.server, "state-1", {"code": "auth-code", "state": "state-1"}
        )

        # Assert
        assert response.status_code == 200
        assert "Authorization Successful" in response.text
        assert result.result() == "auth-code"

    async def test_state_mismatch_rejected(self):
        response, result = await hit_callback(
            self.server, "state-1", {"code": "auth-code", "state": "forged"}
        )

        assert "Authorization Error" in response.text
        with pytest.raises(AuthorizationError, match="State"):
            result.result()

    async def test_reported_error(self):
        response, result = await hit_callback(
            self.server,
            "state-1",
            {"error": "access_denied", "error_description": "<denied>", "state": "state-1"},
        )

        assert "Authorization Error" in response.text
        assert "<denied>" not in response.text
        with pytest.raises(AuthorizationError, match="access_denied"):
            result.result()

    async def test_missing_code(self):
        _, result = await hit_callback(self.server, "state-1", {"state": "state-1"})

        with pytest.raises(AuthorizationError, match="No authorization code"):
            result.result()


class TestFromRedirectUri:
    def test_binds_to_redirect_uri_parts(self):
        server = AuthorizationCallbackServer.from_redirect_uri(
            "http://127.0.0.1:9123/oauth/done", timeout=5
        )

        assert server.host == "127.0.0.1"
        assert server.port == 9123
        assert server.callback_path == "/oauth/done"
        assert server.timeout == 5

    def test_defaults_port(self):
        server = AuthorizationCallbackServer.from_redirect_uri("http://localhost/callback")

        assert server.port == 8080


class TestWaitForCode:
    async def test_serves_real_callback_and_shuts_down(self):
        # Arrange
        server = AuthorizationCallbackServer(host="127.0.0.1", port=0, timeout=5)
        waiter = asyncio.create_task(server.wait_for_code("state-1"))
        while server.bound_port is None:
            await asyncio.sleep(0.01)

        # Act
        async with httpx.AsyncClient(trust_env=False) as client:
            response = await client.get(
                f"http://127.0.0.1:{server.bound_port}/callback",
                params={"code": "auth-code", "state": "state-1"},
            )
        code = await waiter

        # Assert
        assert response.status_code == 200
        assert "Authorization Successful" in response.text
        assert code == "auth-code"
        assert not server.is_serving

    async def test_start_returns_once_listening(self):
        # Arrange
        server = AuthorizationCallbackServer(host="127.0.0.1", port=0, timeout=5)

        # Act
        await server.start("state-1")
        try:
            assert server.is_serving
            async with httpx.AsyncClient(trust_env=False) as client:
                await client.get(
                    f"http://127.0.0.1:{server.bound_port}/callback",
                    params={"error": "access_denied", "state": "state-1"},
                )

            # Assert
            with pytest.raises(AuthorizationError, match="access_denied"):
                await server.wait()
        finally:
            await server.stop()

        assert not server.is_serving

    async def test_busy_port_raises_authorization_error(self):
        # Arrange
        with socket.create_server(("127.0.0.1", 0)) as occupied:
            port = occupied.getsockname()[1]
            server = AuthorizationCallbackServer(host="127.0.0.1", port=port, timeout=1)

            # Act / Assert
            with pytest.raises(AuthorizationError, match="Cannot listen") as exc_info:
                await server.wait_for_code("state-1")

        assert not isinstance(exc_info.value, AuthorizationTimeout)
        assert not server.is_serving

    async def test_times_out_without_callback(self):
        server = AuthorizationCallbackServer(host="127.0.0.1", port=0, timeout=0.1)

        with pytest.raises(AuthorizationTimeout):
            await server.wait_for_code("state-1")

        assert not server.is_serving

    async def test_stop_without_start(self):
        await AuthorizationCallbackServer().stop()
