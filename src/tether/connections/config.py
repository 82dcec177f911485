"""Server and OAuth configuration for remote MCP connections.

String values may reference a fixed set of variables as ``${name}``:
``__dirname``, ``HOME`` and ``user_config.<key>``. Substitution is a plain
lookup; nothing is ever evaluated.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_VARIABLE_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_-]+)?)\}")


class OAuthConfig(BaseModel):
    """Per-server OAuth settings."""

    enabled: bool = False
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    scope: str | None = None
    auto_register: bool = False


class ProcessConfig(BaseModel):
    """Launch parameters for stdio servers."""

    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class ServerConfig(BaseModel):
    """Transport parameters for one MCP server."""

    type: Literal["http", "sse", "stdio"] = "http"
    entry_point: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    mcp_config: ProcessConfig | None = None
    oauth_config: OAuthConfig = Field(default_factory=OAuthConfig)


def build_variables(
    dirname: str, home: str, user_config: Mapping[str, Any] | None = None
) -> dict[str, str]:
    """Build the closed variable set available to substitution."""
    variables = {"__dirname": dirname, "HOME": home}
    for key, value in (user_config or {}).items():
        variables[f"user_config.{key}"] = str(value)
    return variables


def substitute_variables(value: Any, variables: Mapping[str, str]) -> Any:
    """Replace ``${name}`` references in strings, lists and dicts.

    Unknown names are left untouched.
    """
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in variables:
                logger.debug(f"Unknown variable ${{{name}}} left as-is")
                return match.group(0)
            return variables[name]

        return _VARIABLE_PATTERN.sub(replace, value)
    if isinstance(value, list):
        return [substitute_variables(item, variables) for item in value]
    if isinstance(value, dict):
        return {key: substitute_variables(item, variables) for key, item in value.items()}
    return value


def resolve_server_config(
    raw: Mapping[str, Any], variables: Mapping[str, str]
) -> ServerConfig:
    """Substitute variables into raw server settings and validate them."""
    return ServerConfig.model_validate(substitute_variables(dict(raw), variables))
