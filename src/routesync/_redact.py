"""Helpers for safe debug logging.

Audit details carry contact data, signatures and photo URLs collected at
pickup and drop. Photo URLs are usually pre-signed, so their query string
is dropped as well.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel

_REDACTED = "<redacted>"
_MAX_DEPTH = 12

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "authorization",
        "email",
        "phone",
        "phonenumber",
        "contactphone",
        "pickupcontactphone",
        "dropcontactphone",
        "signature",
        "signatureurl",
    }
)


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def _redact_text(value: str, max_string: int) -> str:
    if value.startswith(("http://", "https://")) and "?" in value:
        value = value.split("?", 1)[0] + "?" + _REDACTED
    if len(value) > max_string:
        return f"{value[:max_string]}…<truncated>"
    return value


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a copy of *value* safe to put in a debug log line."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _redact_text(value, max_string)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    if isinstance(value, Mapping):
        return {
            str(key): _REDACTED
            if _normalize_key(str(key)) in _SENSITIVE_KEYS
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]
    return repr(value)
