from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timedelta, timezone
from typing import Any

from .models import BrowserStorage

# Base64url of '{"', which every JSON header starts with.
TOKEN_PREFIX = "eyJ"
MIN_TOKEN_LENGTH = 100


def looks_like_token(value: Any) -> bool:
    """
    Structural signature of a bearer credential: prefix, minimum length and
    three dot-separated segments.
    """
    if not isinstance(value, str):
        return False
    return value.startswith(TOKEN_PREFIX) and len(value) > MIN_TOKEN_LENGTH and value.count(".") == 2


def find_token(storage: BrowserStorage, well_known_key: str = "sessionToken") -> tuple[str, str] | None:
    """
    Return (token, source_tag) for the first credential-shaped storage value,
    or None when storage holds nothing usable.

    Search order:
      1) localStorage[well_known_key] (prefix check only)
      2) any localStorage value matching the structural signature
      3) any sessionStorage value matching the structural signature
    """
    known = storage.local.get(well_known_key)
    if isinstance(known, str) and known.startswith(TOKEN_PREFIX):
        return known, f"localStorage[{well_known_key}]"

    for area, items in (("localStorage", storage.local), ("sessionStorage", storage.session)):
        for key, value in items.items():
            if looks_like_token(value):
                return value, f"{area}[{key}]"
    return None


def _b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def decode_claims(token: str) -> dict[str, Any] | None:
    """Decode the middle segment as a JSON object. None when undecodable."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    try:
        claims = json.loads(_b64url_decode(parts[1]))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return claims if isinstance(claims, dict) else None


def _epoch(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def resolve_expiry(
    token: str,
    now: datetime,
    fallback_validity: timedelta,
) -> tuple[datetime | None, datetime, bool]:
    """
    Return (issued_at, expires_at, assumed).

    `assumed` is True when the token carries no usable `exp` claim and the
    expiry is `now + fallback_validity`.
    """
    claims = decode_claims(token) or {}
    issued_at = _epoch(claims.get("iat"))
    expires_at = _epoch(claims.get("exp"))
    if expires_at is None:
        return issued_at, now + fallback_validity, True
    return issued_at, expires_at, False
