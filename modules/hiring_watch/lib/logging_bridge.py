from __future__ import annotations

import logging
from typing import Any

from .utils import now_iso

# The JSONL writer lives in the service shell; the library stays importable
# (and quiet) without it.
_logging_backend = None
try:
    from service import logging_utils as _svc_logging

    _logging_backend = _svc_logging
except ImportError:
    _logging_backend = None

_ACTIVITY_LOG = logging.getLogger("hiring_watch.activity")
_ERROR_LOG = logging.getLogger("hiring_watch.error")


def _stamp(event: str, fields: dict[str, Any]) -> dict[str, Any]:
    return {"ts": now_iso(), "event": event, **fields}


def _redact(record: dict[str, Any]) -> dict[str, Any]:
    if _logging_backend is not None:
        return _logging_backend.redact(record)
    return record


def activity(event: str, **fields: Any) -> None:
    """
    Record a structured activity event (token renewed, tick summary, alert sent).
    Falls back to stdlib logging when the JSONL writer is missing or fails.
    """
    record = _stamp(event, fields)
    if _logging_backend is not None:
        try:
            _logging_backend.write_activity_log(record)
            return
        except (OSError, TypeError, ValueError):
            _ACTIVITY_LOG.debug("activity log write failed; using stdlib logging", exc_info=True)
    _ACTIVITY_LOG.info("%s", _redact(record))


def error(event: str, **fields: Any) -> None:
    """Record a structured error event; same fallback rules as activity()."""
    record = _stamp(event, fields)
    if _logging_backend is not None:
        try:
            _logging_backend.write_error_log(record)
            return
        except (OSError, TypeError, ValueError):
            _ERROR_LOG.debug("error log write failed; using stdlib logging", exc_info=True)
    _ERROR_LOG.error("%s", _redact(record))
