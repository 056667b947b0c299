"""Helpers for safe debug logging.

Collection snapshots routinely carry session credentials and whole audio or
image files inlined as base64 ``data:`` URLs.  :func:`redact_for_log` turns a
payload, an entity or a whole snapshot into something small and safe enough
for DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "accesstoken",
        "refreshtoken",
        "apikey",
        "authorization",
        "cookie",
        "set-cookie",
    }
)

_MAX_DEPTH = 20


def _summarize_data_url(value: str) -> str:
    header, _, body = value.partition(",")
    return f"<{header[5:] or 'data'}:{len(body)} chars>"


def _scrub_string(value: str, max_string: int) -> str:
    if value.startswith("data:"):
        return _summarize_data_url(value)
    if len(value) <= max_string:
        return value
    return f"{value[:max_string]}…<truncated>"


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Pydantic models are dumped in their wire form first, so an entity or a
    snapshot tuple can be passed directly.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _scrub_string(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True, exclude_none=True)

    if isinstance(value, Mapping):
        return {
            str(key): "<redacted>"
            if str(key).lower() in _SECRET_KEYS
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]
    return repr(value)
