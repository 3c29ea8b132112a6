"""Masking of credentials in request traces.

Every PostgREST call carries the project key twice (``apikey`` and
``Authorization``), and ``users`` rows may carry passwords. Traces only ever
contain header dicts and JSON payloads, so only JSON-shaped values are walked.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"apikey", "authorization", "password", "token", "access_token", "refresh_token"}
)

_MASK = "<redacted>"


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Return a copy of *value* with sensitive keys masked and long strings cut.

    Long strings are mostly base64 logos in ``company_profile`` payloads.
    """
    if isinstance(value, Mapping):
        return {
            str(key): _MASK if str(key).lower() in _SENSITIVE_KEYS else redact_for_log(item, max_string=max_string)
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        return [redact_for_log(item, max_string=max_string) for item in value]
    if isinstance(value, str) and len(value) > max_string:
        return f"{value[:max_string]}...<{len(value) - max_string} chars truncated>"
    return value
