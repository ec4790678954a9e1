"""Page pattern matching for trigger rules.

A pattern matches when it equals the current path or path+query exactly,
or, when it contains ``*`` or ``?``, when its wildcard translation matches
either of them in full. ``*`` matches any run of characters; every other
character, ``?`` included, is literal.
"""

from __future__ import annotations

import functools
import re
from collections.abc import Iterable


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    parts = (re.escape(chunk) for chunk in pattern.split("*"))
    return re.compile(f"^{'.*'.join(parts)}$")


def pattern_matches(pattern: str, path: str, full_path: str) -> bool:
    if pattern in (path, full_path):
        return True
    if "*" in pattern or "?" in pattern:
        regex = _compile(pattern)
        return bool(regex.match(path) or regex.match(full_path))
    return False


def matches_page(pattern: str | None, path: str, full_path: str | None = None) -> bool:
    """Whether *pattern* selects the page; absent or ``*`` selects every page."""
    if not pattern or pattern == "*":
        return True
    return pattern_matches(pattern, path, full_path or path)


def is_excluded(excludes: Iterable[str], path: str, full_path: str | None = None) -> bool:
    return any(pattern_matches(pattern, path, full_path or path) for pattern in excludes if pattern)
