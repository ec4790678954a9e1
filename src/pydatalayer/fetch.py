"""Trigger rule-set retrieval with conditional revalidation.

The last good rule set is cached through the persistence adapter together
with the server's ``Last-Modified`` value. A cached copy younger than
``rules_ttl`` is revalidated with ``If-Modified-Since``; an older one forces
a full fetch. Any failure falls back to the cached copy, however old.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from pydatalayer._constants import rules_key
from pydatalayer._transport import HttpResponse, RuleSetTransport
from pydatalayer.config import DataLayerConfig
from pydatalayer.exceptions import DataLayerNetworkError, DataLayerParseError
from pydatalayer.persistence import PersistedRecord, PersistenceAdapter
from pydatalayer.triggers.rules import RuleSet

_logger = logging.getLogger(__name__)


def _classify_status(status: int) -> str:
    if status >= 500:
        return "Server Error"
    if status == 404:
        return "Not Found"
    if status >= 400:
        return "Client Error"
    return "Unknown Error"


def parse_rule_set(text: str) -> RuleSet:
    """Decode a rule-set document.

    Raises
    ------
    DataLayerParseError
        If the body is not JSON or not a rule-set object.
    """
    try:
        body = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DataLayerParseError(f"Rule set is not JSON: {exc.msg}") from exc
    if not isinstance(body, dict):
        raise DataLayerParseError("Rule set must be a JSON object")
    try:
        return RuleSet.model_validate(body)
    except ValidationError as exc:
        raise DataLayerParseError(f"Invalid rule set structure: {exc.error_count()} error(s)") from exc


class RuleSetFetcher:
    """Fetch the trigger rule set, caching it in durable storage."""

    def __init__(
        self,
        config: DataLayerConfig,
        persistence: PersistenceAdapter,
        transport: RuleSetTransport,
    ) -> None:
        self._config = config
        self._persistence = persistence
        self._transport = transport
        self._key = rules_key(config.storage_prefix)

    @property
    def cache_key(self) -> str:
        return self._key

    def cached(self) -> RuleSet | None:
        """The cached rule set regardless of age, if one decodes cleanly."""
        return self._decode_cached(self._persistence.load_record(self._key))

    def _decode_cached(self, record: PersistedRecord | None) -> RuleSet | None:
        if record is None:
            return None
        try:
            return RuleSet.model_validate(record.snapshot)
        except ValidationError as exc:
            _logger.warning("Failed to parse cached rule set: %s", exc.error_count())
            return None

    def _fallback(self, reason: str, cached: RuleSet | None) -> RuleSet | None:
        if cached is not None:
            _logger.warning("Using cached rule set as fallback (%s)", reason)
            return cached
        _logger.warning("No cached rule set available (%s)", reason)
        return None

    async def fetch(self) -> RuleSet | None:
        """Return the current rule set, or ``None`` when none can be obtained."""
        record = self._persistence.load_record(self._key)
        cached = self._decode_cached(record)
        age = self._persistence.age(self._key)
        fresh = age is not None and age <= self._config.rules_ttl

        headers: dict[str, str] = {}
        if cached is not None and fresh and record is not None and record.marker:
            headers["If-Modified-Since"] = record.marker
        elif cached is not None and not fresh:
            _logger.debug("Cached rule set is stale; forcing a full fetch")

        url = self._config.rules_url
        try:
            response = await self._transport.get(url, headers)
        except DataLayerNetworkError as exc:
            _logger.error("Error loading custom events config (Network Error): %s", exc)
            return self._fallback("network error", cached)

        if response.status == 304:
            if cached is None:
                return self._fallback("304 without a cached copy", None)
            # extends freshness without rewriting the body
            self._persistence.touch(self._key)
            return cached

        if not response.ok:
            _logger.warning("Failed to fetch rule set: %s (HTTP %d)", _classify_status(response.status), response.status)
            return self._fallback(f"HTTP {response.status}", cached)

        try:
            rule_set = parse_rule_set(response.text)
        except DataLayerParseError as exc:
            _logger.error("Rejected rule set from %s: %s", url, exc)
            return self._fallback("unparseable response", cached)

        self._store(rule_set, response)
        return rule_set

    def _store(self, rule_set: RuleSet, response: HttpResponse) -> None:
        snapshot: dict[str, Any] = rule_set.model_dump()
        marker = response.header("Last-Modified")
        if not self._persistence.store(self._key, snapshot, marker=marker):
            _logger.warning("Could not cache rule set; continuing without cache")
