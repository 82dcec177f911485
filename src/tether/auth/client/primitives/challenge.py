"""Tolerant WWW-Authenticate header parsing.

This is a best-effort parser for the loosely followed challenge grammar
servers actually send, not an RFC 8941 structured-header parser. It never
raises: input it cannot make sense of yields an empty list.
"""

from __future__ import annotations

import logging
import re

from tether.auth.client.models.challenge import AuthChallenge

logger = logging.getLogger(__name__)

_TOKEN = r"[A-Za-z][A-Za-z0-9_+-]*"

# A challenge is "scheme SP params" running up to the next ", scheme SP".
# A token followed by "=" is a parameter name, never a scheme.
_CHALLENGE_PATTERN = re.compile(
    rf"(?:^|,\s*)({_TOKEN})(?!\s*=)\s+(.+?)(?=,\s*{_TOKEN}(?!\s*=)\s|$)"
)
_PARAM_PATTERN = re.compile(
    r'([A-Za-z][A-Za-z0-9_-]*)\s*=\s*(?:"([^"]*)"|([^,\s]+))'
)
_QUOTED_PATTERN = re.compile(r'"[^"]*"')


def _mask_quoted(header: str) -> str:
    """Blank out quoted text so it cannot look like a scheme boundary.

    Offsets are preserved, so match spans index into the original header.
    """
    return _QUOTED_PATTERN.sub(lambda m: '"' + "_" * (len(m.group()) - 2) + '"', header)


def parse_auth_params(param_string: str) -> dict[str, str]:
    """Parse ``key="quoted value"`` and ``key=token`` pairs."""
    params: dict[str, str] = {}
    for match in _PARAM_PATTERN.finditer(param_string):
        key, quoted, unquoted = match.groups()
        params[key] = quoted if quoted is not None else unquoted
    return params


def parse_www_authenticate(header: str | None) -> list[AuthChallenge]:
    """Parse a WWW-Authenticate header value into its challenges.

    Args:
        header: Raw header value, possibly holding several challenges

    Returns:
        Challenges in header order; empty if nothing could be parsed
    """
    if not header:
        return []

    header = header.strip()
    masked = _mask_quoted(header)
    challenges: list[AuthChallenge] = []

    for match in _CHALLENGE_PATTERN.finditer(masked):
        scheme = match.group(1)
        param_string = header[match.start(2) : match.end(2)]
        challenges.append(AuthChallenge(scheme, parse_auth_params(param_string)))

    # Malformed headers: treat everything after "Bearer" as its parameters
    if not challenges and header.lower().startswith("bearer"):
        challenges.append(AuthChallenge("Bearer", parse_auth_params(header[6:].strip())))

    return challenges


def extract_resource_metadata(header: str | None) -> str | None:
    """Return resource_metadata from the first Bearer challenge carrying it.

    RFC 9728 Section 5.1: the WWW-Authenticate response on a 401 should point
    at the protected resource metadata document.
    """
    for challenge in parse_www_authenticate(header):
        if challenge.is_bearer():
            resource_metadata = challenge.params.get("resource_metadata")
            if resource_metadata:
                logger.debug(f"Found resource_metadata in challenge: {resource_metadata}")
                return resource_metadata

    logger.debug("No resource_metadata found in WWW-Authenticate header")
    return None
