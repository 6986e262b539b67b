from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Any

_HTML_ESCAPE_QUOTE = True  # keep quotes escaped for attributes


def esc(s: Any) -> str:
    """
    Escape text for Telegram's HTML parse mode. Do NOT wrap or add tags.
    """
    if s is None:
        return ""
    return html.escape(str(s), quote=_HTML_ESCAPE_QUOTE)


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/config.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return utcnow().isoformat().replace("+00:00", "Z")


def mask_secret(value: str | None, keep: int = 12) -> str:
    """Show only the first `keep` characters of a secret."""
    if not value:
        return ""
    if len(value) <= keep:
        return "***"
    return f"{value[:keep]}..."
