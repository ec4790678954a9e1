"""Durable form-entry storage kept apart from the state tree.

Checkout and registration details outlive cart clears: they have their own
record and a longer TTL, and :meth:`DataLayer.clear` never touches them.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any

from pydatalayer._redact import redact_for_log
from pydatalayer.persistence import PersistenceAdapter

_logger = logging.getLogger(__name__)


class FormEntryStore:
    def __init__(self, persistence: PersistenceAdapter, key: str, *, ttl: float) -> None:
        self._persistence = persistence
        self._key = key
        self._ttl = ttl

    @property
    def key(self) -> str:
        return self._key

    def save(self, data: Mapping[str, Any]) -> bool:
        """Persist *data*, replacing any previous entry."""
        if not isinstance(data, Mapping):
            _logger.error("Invalid form data provided: expected a mapping, got %s", type(data).__name__)
            return False
        _logger.debug("Saving form data: %s", redact_for_log(data))
        return self._persistence.store(self._key, copy.deepcopy(dict(data)))

    def load(self) -> dict[str, Any] | None:
        """Return saved form data, or ``None`` when absent, stale or corrupt."""
        data = self._persistence.load(self._key, self._ttl, evict_stale=True)
        return data if isinstance(data, dict) else None

    def clear(self) -> None:
        self._persistence.remove(self._key)
