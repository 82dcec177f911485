"""Persistent OAuth token store.

Tokens live in one in-memory mapping that is mirrored to a JSON file on
every mutation. Each save rewrites the whole file. There is no locking
between processes: two processes saving concurrently race and the last
writer wins, which is acceptable for a single-user local cache.
"""

from __future__ import annotations

import json
import logging
import os
import time
import warnings
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from tether.auth.client.models.errors import PersistenceWarning, TokenStoreError
from tether.auth.client.models.tokens import TokenRecord, TokenResponse

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_STORE_PATH = Path.home() / ".mcp" / "tokens.json"
KEY_SEPARATOR = ":"


def token_key(resource: str, client_id: str, authorization_server: str) -> str:
    """Build the opaque storage key for a token.

    The parts are URL-bearing strings joined as-is, so the key must only be
    compared as a whole, never split back into its parts.
    """
    return KEY_SEPARATOR.join((resource, client_id, authorization_server))


class TokenStore:
    """Token records keyed by (resource, client_id, authorization_server)."""

    def __init__(
        self,
        path: Path | str = DEFAULT_TOKEN_STORE_PATH,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path).expanduser()
        self._clock = clock
        self._tokens: dict[str, TokenRecord] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def load(self) -> None:
        """Read the backing file into memory.

        A missing file means an empty store. Unreadable content, including
        bytes that are not UTF-8, is reported with a PersistenceWarning and
        the store starts empty.
        """
        self._tokens = {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No token store at {self.path}, starting empty")
            return
        except (OSError, UnicodeDecodeError) as e:
            self._warn(f"Failed to read token store {self.path}: {e}")
            return

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("token store must be a JSON object")
            self._tokens = {
                key: TokenRecord.model_validate(value) for key, value in data.items()
            }
        except (ValueError, ValidationError) as e:
            self._tokens = {}
            self._warn(f"Ignoring unreadable token store {self.path}: {e}")
            return

        logger.info(f"Loaded {len(self._tokens)} tokens from {self.path}")

    def save(self) -> None:
        """Overwrite the backing file with the whole in-memory mapping."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            key: record.model_dump(mode="json") for key, record in self._tokens.items()
        }
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.chmod(self.path, 0o600)
        logger.debug(f"Saved {len(self._tokens)} tokens to {self.path}")

    def get(
        self, resource: str, client_id: str, authorization_server: str
    ) -> TokenRecord | None:
        """Return the record if present and not expired.

        Expired records are hidden but left in place for refresh and for
        sweep_expired().
        """
        record = self.get_record(resource, client_id, authorization_server)
        if record is None:
            return None
        if record.is_expired(self._clock()):
            logger.debug(f"Token for {resource} has expired")
            return None
        return record

    def get_record(
        self, resource: str, client_id: str, authorization_server: str
    ) -> TokenRecord | None:
        """Return the record whether or not it has expired."""
        return self._tokens.get(token_key(resource, client_id, authorization_server))

    def has_valid(
        self, resource: str, client_id: str, authorization_server: str
    ) -> bool:
        return self.get(resource, client_id, authorization_server) is not None

    def list_all(self) -> list[TokenRecord]:
        """All records, expired ones included."""
        return list(self._tokens.values())

    def store(
        self,
        token_response: TokenResponse,
        resource: str,
        client_id: str,
        authorization_server: str,
    ) -> TokenRecord:
        """Insert or replace the record for a key and persist."""
        record = TokenRecord(
            access_token=token_response.access_token,
            token_type=token_response.token_type,
            expires_at=token_response.calculate_expires_at(self._clock()),
            refresh_token=token_response.refresh_token,
            scope=token_response.scope,
            resource=resource,
            client_id=client_id,
            authorization_server=authorization_server,
        )
        self._tokens[token_key(resource, client_id, authorization_server)] = record
        self.save()
        logger.info(f"Stored token for {resource}")
        return record

    def update(
        self,
        resource: str,
        client_id: str,
        authorization_server: str,
        token_response: TokenResponse,
    ) -> TokenRecord:
        """Apply a refresh response to an existing record and persist.

        The refresh token is only replaced when the response carries a new
        one; expires_at is only recomputed when expires_in is present.

        Raises:
            TokenStoreError: If no record exists for the key
        """
        key = token_key(resource, client_id, authorization_server)
        existing = self._tokens.get(key)
        if existing is None:
            raise TokenStoreError(f"Cannot update non-existent token for {resource}")

        changes: dict[str, object] = {
            "access_token": token_response.access_token,
            "token_type": token_response.token_type,
            "scope": token_response.scope,
        }
        if token_response.refresh_token:
            changes["refresh_token"] = token_response.refresh_token
        if token_response.expires_in is not None:
            changes["expires_at"] = token_response.calculate_expires_at(self._clock())

        record = existing.model_copy(update=changes)
        self._tokens[key] = record
        self.save()
        logger.info(f"Updated token for {resource}")
        return record

    def remove(self, resource: str, client_id: str, authorization_server: str) -> None:
        """Delete the record for a key (if any) and persist."""
        self._tokens.pop(token_key(resource, client_id, authorization_server), None)
        self.save()

    def sweep_expired(self) -> int:
        """Delete every expired record, persisting only if any were removed.

        Returns:
            Number of records removed
        """
        now = self._clock()
        expired = [key for key, record in self._tokens.items() if record.is_expired(now)]
        for key in expired:
            del self._tokens[key]

        if expired:
            logger.info(f"Removed {len(expired)} expired tokens")
            self.save()
        return len(expired)

    def clear_all(self) -> None:
        """Forget every record and delete the backing file."""
        self._tokens.clear()
        self.path.unlink(missing_ok=True)
        logger.info(f"Cleared token store {self.path}")

    def _warn(self, message: str) -> None:
        logger.warning(message)
        warnings.warn(message, PersistenceWarning, stacklevel=3)
