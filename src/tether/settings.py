"""Runtime settings loaded from ``TETHER_*`` environment variables."""

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class TetherSettings(BaseSettings):
    """OAuth and connection pool policy values.

    All settings can be overridden through environment variables with the
    ``TETHER_`` prefix, e.g. ``TETHER_IDLE_TIMEOUT=60``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TETHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    token_store_path: Path = Field(
        default=Path("~/.mcp/tokens.json"),
        description="JSON file backing the token store",
    )
    idle_timeout: float = Field(
        default=180.0,
        gt=0,
        description="Seconds an unused pooled connection is kept open",
    )
    callback_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Seconds to wait for the authorization callback",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for OAuth HTTP requests",
    )
    client_name: str = Field(
        default="MCP Client",
        description="client_name used for dynamic client registration",
    )
    redirect_uri: str = Field(
        default="http://localhost:8080/callback",
        description="Default OAuth redirect URI",
    )
    allow_unauthenticated_fallback: bool = Field(
        default=False,
        description="Connect without a token when OAuth discovery fails",
    )

    @field_validator("token_store_path")
    @classmethod
    def expand_token_store_path(cls, v: Path) -> Path:
        return v.expanduser()


def get_settings() -> TetherSettings:
    """Load settings from the environment."""
    settings = TetherSettings()
    logger.debug(f"Loaded settings: {settings.model_dump()}")
    return settings
