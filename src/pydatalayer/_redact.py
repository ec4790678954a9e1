"""Masking of personal profile fields in debug output.

Registration and checkout forms write e-mail addresses, phone numbers,
street addresses and names into the data layer. Anything logged at DEBUG
goes through :func:`redact_for_log` first.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_MASK = "<redacted>"
_MAX_DEPTH = 16

# Compared lower-cased; a key holding a nested mapping is walked, not masked.
_PERSONAL_KEYS: frozenset[str] = frozenset(
    {
        "address",
        "email",
        "number",
        "phone",
        "street1",
        "postalcode",
        "firstname",
        "lastname",
        "birthdayandmonth",
        "password",
        "cardnumber",
        "cvv",
    }
)


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…<truncated>"


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* with personal fields masked and long strings clipped.

    Empty personal fields are left as they are so logs still show whether a
    form field was filled in.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if isinstance(value, str):
        return _clip(value, max_string)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for key, item in value.items():
            name = str(key)
            personal = name.lower() in _PERSONAL_KEYS and not isinstance(item, Mapping)
            if personal:
                out[name] = item if _is_blank(item) else _MASK
            else:
                out[name] = redact_for_log(item, max_string=max_string, _depth=_depth + 1)
        return out

    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return _clip(repr(value), max_string)
