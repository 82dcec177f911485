"""PKCE (Proof Key for Code Exchange) primitives for OAuth 2.1 security.

Implements RFC 7636 S256 parameter generation and the random state value
that binds a callback to the authorization request that caused it.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from tether.auth.client.models.security import PKCEPair


def compute_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a code verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier))),
    hashed over the verifier string exactly as it is transmitted.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state() -> str:
    """Generate an unpredictable state parameter (16 random bytes, hex)."""
    return secrets.token_hex(16)


class PKCEManager:
    """Generates PKCE parameters for OAuth 2.1 authorization flows."""

    verifier_bytes = 32

    def generate_pair(self) -> PKCEPair:
        """Generate a fresh verifier and its S256 challenge.

        The verifier is 32 random bytes, base64url-encoded without padding,
        which gives the 43 characters RFC 7636 asks for at minimum.
        """
        code_verifier = secrets.token_urlsafe(self.verifier_bytes)
        return PKCEPair(
            code_verifier=code_verifier,
            code_challenge=compute_code_challenge(code_verifier),
        )
