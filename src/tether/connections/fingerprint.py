"""Connection fingerprints.

A fingerprint covers the full effective configuration of a connection, so
two configurations that differ in any setting never share a connection.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping

from tether.connections.config import ServerConfig


def compute_fingerprint(
    extension_id: str,
    server_config: ServerConfig,
    user_settings: Mapping[str, Any] | None = None,
) -> str:
    """Hash the logical extension identity, transport parameters and settings."""
    payload = {
        "extension": extension_id,
        "server": server_config.model_dump(mode="json"),
        "user_settings": dict(user_settings or {}),
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
