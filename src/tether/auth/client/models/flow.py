"""Authorization flow models for OAuth 2.1.

Contains models for authorization requests and callback handling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class AuthorizationRequest:
    """A ready-to-open authorization URL and the state it was issued with."""

    url: str
    state: str


@dataclass(frozen=True)
class AuthorizationResponse:
    """Query parameters delivered to the redirect URI."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> AuthorizationResponse:
        return cls(
            code=params.get("code") or None,
            state=params.get("state"),
            error=params.get("error") or None,
            error_description=params.get("error_description"),
            error_uri=params.get("error_uri"),
        )

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
