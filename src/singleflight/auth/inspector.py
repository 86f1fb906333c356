"""Expiry inspection of JWT bearer tokens.

Signatures are not verified here; the server does that. The payload is only read
to decide whether a token is worth sending at all.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode

log = logging.getLogger(__name__)


class TokenStatus(Enum):
    VALID = "valid"
    EXPIRED = "expired"
    MALFORMED = "malformed"


def decode_claims(token: str) -> dict:
    """Return the unverified payload of a JWT. Raises ValueError if malformed."""
    if not isinstance(token, str):
        raise ValueError(f"Token must be a string, got {type(token).__name__}")
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Token must have three dot-separated segments")
    claims = json_loads(urlsafe_b64decode(to_bytes(parts[1])))
    if not isinstance(claims, dict):
        raise ValueError("Token payload is not a JSON object")
    return claims


def get_expiry(token: str) -> Optional[datetime]:
    """Return the UTC expiry of a token, or None if malformed or without an exp claim."""
    try:
        exp = decode_claims(token).get("exp")
    except ValueError:
        return None
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return None
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None


def inspect(token: str, margin: float = 0) -> TokenStatus:
    """Classify a token.

    A token without an ``exp`` claim is treated as having expired at the epoch.
    ``margin`` seconds are subtracted from the lifetime, so a token that expires
    mid-request is not sent.
    """
    try:
        claims = decode_claims(token)
    except ValueError as e:
        log.debug(f"Malformed token: {e}")
        return TokenStatus.MALFORMED

    exp = claims.get("exp") or 0
    if not isinstance(exp, (int, float)):
        return TokenStatus.MALFORMED
    if exp < time.time() + margin:
        return TokenStatus.EXPIRED
    return TokenStatus.VALID


def is_expired(token: str, margin: float = 0) -> bool:
    """True for expired and for malformed tokens."""
    return inspect(token, margin) is not TokenStatus.VALID


class TokenInspector:
    """Bundles the expiry margin so collaborators can ask a single question."""

    def __init__(self, margin: float = 0):
        self.margin = margin

    def is_valid(self, token: Optional[str]) -> bool:
        return bool(token) and not is_expired(token, self.margin)
