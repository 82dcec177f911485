"""Structured form of a WWW-Authenticate challenge."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AuthChallenge:
    """One authentication challenge, e.g. ``Bearer realm="api"``."""

    scheme: str
    params: dict[str, str] = field(default_factory=dict)

    def is_bearer(self) -> bool:
        return self.scheme.lower() == "bearer"
