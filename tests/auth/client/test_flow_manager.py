"""Tests for OAuth 2.1 authorization flow handling.

High-impact tests covering:
- Authorization URL generation with proper parameters
- Fresh state per request
- Callback validation and the errors it raises
"""

from urllib.parse import parse_qs, urlparse

import pytest

from tether.auth.client.models.errors import AuthorizationError
from tether.auth.client.primitives.pkce import compute_code_challenge
from tether.auth.client.services.flow import OAuth2FlowManager


class TestBuildAuthorizationRequest:
    """Test authorization URL generation."""

    def setup_method(self):
        self.flow_manager = OAuth2FlowManager()

    def test_url_contains_required_parameters(self):
        # Act
        request = self.flow_manager.build_authorization_request(
            "https://auth.example.com/authorize",
            "test-client-123",
            "http://localhost:8080/callback",
            "https://mcp.example.com/mcp",
            "challenge-abc",
            scope="read write",
        )

        # Assert - Parse the generated URL
        parsed = urlparse(request.url)
        query_params = parse_qs(parsed.query)

        assert parsed.netloc == "auth.example.com"
        assert parsed.path == "/authorize"
        assert query_params["response_type"] == ["code"]
        assert query_params["client_id"] == ["test-client-123"]
        assert query_params["redirect_uri"] == ["http://localhost:8080/callback"]
        assert query_params["state"] == [request.state]
        assert query_params["code_challenge"] == ["challenge-abc"]
        assert query_params["code_challenge_method"] == ["S256"]
        assert query_params["resource"] == ["https://mcp.example.com/mcp"]
        assert query_params["scope"] == ["read write"]

    def test_scope_omitted_when_not_given(self):
        request = self.flow_manager.build_authorization_request(
            "https://auth.example.com/authorize",
            "client",
            "http://localhost:8080/callback",
            "https://mcp.example.com",
            "challenge",
        )

        assert "scope" not in parse_qs(urlparse(request.url).query)

    def test_state_differs_across_calls(self):
        states = {
            self.flow_manager.build_authorization_request(
                "https://auth.example.com/authorize",
                "client",
                "http://localhost:8080/callback",
                "https://mcp.example.com",
                "challenge",
            ).state
            for _ in range(50)
        }

        assert len(states) == 50

    def test_endpoint_with_existing_query(self):
        request = self.flow_manager.build_authorization_request(
            "https://auth.example.com/authorize?tenant=acme",
            "client",
            "http://localhost:8080/callback",
            "https://mcp.example.com",
            "challenge",
        )

        query_params = parse_qs(urlparse(request.url).query)
        assert query_params["tenant"] == ["acme"]
        assert query_params["response_type"] == ["code"]


class TestStart:
    def test_state_matches_request_and_challenge_matches_verifier(self):
        # Arrange
        flow_manager = OAuth2FlowManager()

        # Act
        request, state = flow_manager.start(
            "https://auth.example.com/authorize",
            "client-1",
            "http://localhost:8080/callback",
            "https://mcp.example.com",
        )

        # Assert
        query_params = parse_qs(urlparse(request.url).query)
        assert state.state == request.state
        assert state.client_id == "client-1"
        assert state.resource == "https://mcp.example.com"
        assert query_params["code_challenge"] == [
            compute_code_challenge(state.code_verifier)
        ]


class TestValidateCallback:
    def setup_method(self):
        self.flow_manager = OAuth2FlowManager()

    def test_returns_code(self):
        code = self.flow_manager.validate_callback(
            {"code": "auth-code", "state": "s1"}, "s1"
        )

        assert code == "auth-code"

    def test_reported_error(self):
        with pytest.raises(AuthorizationError, match="access_denied"):
            self.flow_manager.validate_callback(
                {"error": "access_denied", "state": "s1"}, "s1"
            )

    def test_state_mismatch(self):
        with pytest.raises(AuthorizationError, match="State"):
            self.flow_manager.validate_callback(
                {"code": "auth-code", "state": "other"}, "s1"
            )

    def test_missing_state(self):
        with pytest.raises(AuthorizationError):
            self.flow_manager.validate_callback({"code": "auth-code"}, "s1")

    def test_missing_code(self):
        with pytest.raises(AuthorizationError, match="No authorization code"):
            self.flow_manager.validate_callback({"state": "s1"}, "s1")
