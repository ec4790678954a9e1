"""Merge algorithms for the state tree.

Both functions build and return a new tree; neither mutates its inputs, so
the container can assign the result in one step.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from pydatalayer.state.events import MergeMode


def deep_merge(target: Mapping[str, Any] | None, source: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge *source* into a copy of *target*.

    Nested mappings merge key-wise. Any other value, ``None`` and empty
    values included, overwrites the target's value outright.
    """
    output: dict[str, Any] = dict(target) if isinstance(target, Mapping) else {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            existing = output.get(key)
            output[key] = deep_merge(existing if isinstance(existing, Mapping) else None, value)
        else:
            output[key] = copy.deepcopy(value)
    return output


def shallow_replace(target: Mapping[str, Any] | None, source: Mapping[str, Any]) -> dict[str, Any]:
    """Replace the top-level keys present in *source*, keeping their siblings."""
    output: dict[str, Any] = dict(target) if isinstance(target, Mapping) else {}
    for key, value in source.items():
        output[key] = copy.deepcopy(value)
    return output


def apply_update(target: Mapping[str, Any] | None, payload: Mapping[str, Any], mode: MergeMode) -> dict[str, Any]:
    if mode is MergeMode.SHALLOW:
        return shallow_replace(target, payload)
    return deep_merge(target, payload)
