"""Discovery-related models for OAuth 2.1 server metadata.

Contains models for Protected Resource Metadata (RFC 9728) and
Authorization Server Metadata (RFC 8414) discovery.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728).

    Metadata returned by MCP servers to indicate their authorization servers
    and resource configuration. Produced fresh on every discovery call.
    """

    resource: str | None = None
    authorization_servers: list[str] = Field(min_length=1)

    # Optional fields from RFC 9728
    bearer_methods_supported: list[str] | None = None
    resource_documentation: str | None = None
    resource_policy_uri: str | None = None
    resource_tos_uri: str | None = None

    @field_validator("authorization_servers")
    @classmethod
    def validate_auth_servers(cls, v: list[str]) -> list[str]:
        if not any(server.strip() for server in v):
            raise ValueError("At least one authorization server is required")
        return v


class AuthorizationServerMetadata(BaseModel):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414).

    Metadata returned by authorization servers describing their endpoints
    and supported capabilities.
    """

    issuer: str
    response_types_supported: list[str] = Field(default_factory=lambda: ["code"])

    # Required for authorization code flow
    authorization_endpoint: str = Field(min_length=1)
    token_endpoint: str = Field(min_length=1)

    # PKCE is mandatory: missing or S256-less metadata is unusable
    code_challenge_methods_supported: list[str] | None = Field(
        default=None, validate_default=True
    )

    # Dynamic registration (RFC 7591)
    registration_endpoint: str | None = None

    # Optional but commonly used
    revocation_endpoint: str | None = None
    introspection_endpoint: str | None = None
    scopes_supported: list[str] | None = None
    grant_types_supported: list[str] | None = None

    @field_validator("code_challenge_methods_supported")
    @classmethod
    def validate_pkce_support(cls, v: list[str] | None) -> list[str] | None:
        if not v or "S256" not in v:
            raise ValueError("Authorization server must support S256 PKCE method")
        return v
