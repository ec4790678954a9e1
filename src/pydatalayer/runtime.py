"""Runtime wiring: container, rule fetcher and trigger engine for one session."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import aiohttp

from pydatalayer._transport import HttpTransport, RuleSetTransport
from pydatalayer.config import DataLayerConfig
from pydatalayer.exceptions import DataLayerError
from pydatalayer.fetch import RuleSetFetcher
from pydatalayer.persistence import Storage
from pydatalayer.state.container import DataLayer
from pydatalayer.state.events import UpdateType
from pydatalayer.state.tree import PageContext
from pydatalayer.triggers.engine import TriggerEngine
from pydatalayer.triggers.host import PageHost
from pydatalayer.triggers.rules import RuleSet

_logger = logging.getLogger(__name__)


class DataLayerRuntime:
    """Owns the HTTP session and every per-session component.

    Usage::

        async with DataLayerRuntime(config) as runtime:
            runtime.datalayer.write({"user": {"loggedIn": True}})
            await runtime.start(host=page)
    """

    def __init__(
        self,
        config: DataLayerConfig | None = None,
        *,
        storage: Storage | None = None,
        session: aiohttp.ClientSession | None = None,
        transport: RuleSetTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or DataLayerConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._datalayer = DataLayer(self._config, storage=storage, clock=clock)
        self._fetcher: RuleSetFetcher | None = None
        self._engine: TriggerEngine | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DataLayerRuntime:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._http_session, timeout=self._config.request_timeout)
        self._fetcher = RuleSetFetcher(self._config, self._datalayer.persistence, self._transport)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._engine is not None:
            self._engine.cleanup()
            self._engine = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._fetcher = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> DataLayerConfig:
        return self._config

    @property
    def datalayer(self) -> DataLayer:
        return self._datalayer

    @property
    def engine(self) -> TriggerEngine | None:
        return self._engine

    def _require_fetcher(self) -> RuleSetFetcher:
        if self._fetcher is None:
            raise DataLayerError("Runtime not initialized. Use 'async with DataLayerRuntime(...) as runtime:'")
        return self._fetcher

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------

    async def start(self, page: PageContext | None = None, host: PageHost | None = None) -> UpdateType:
        """Start the container, then fetch rules and run the trigger engine.

        The page context defaults to the host's location. Without a host only
        the container is started.
        """
        fetcher = self._require_fetcher()
        if page is None and host is not None:
            page = PageContext(path=host.path, query=host.query, title=getattr(host, "title", ""))

        start_type = self._datalayer.start(page)
        if host is None:
            return start_type

        rule_set = await fetcher.fetch()
        if self._engine is not None:
            self._engine.cleanup()
        self._engine = TriggerEngine(self._datalayer, host)
        await self._engine.start(rule_set)
        return start_type

    async def refresh_rules(self) -> RuleSet | None:
        """Re-fetch the rule set and, when an engine runs, re-evaluate it."""
        rule_set = await self._require_fetcher().fetch()
        if rule_set is None or self._engine is None:
            return rule_set
        await self._datalayer.wait_until_settled()
        self._engine.evaluate(rule_set)
        return rule_set


# ----------------------------------------------------------------------
# Process-wide instance
# ----------------------------------------------------------------------

_instance: DataLayer | None = None


def init_datalayer(config: DataLayerConfig | None = None, *, storage: Storage | None = None) -> DataLayer:
    """Create the process-wide data layer, or return the existing one."""
    global _instance
    if _instance is None:
        _instance = DataLayer(config, storage=storage)
    elif config is not None:
        _logger.warning("Data layer already initialized; ignoring new configuration")
    return _instance


def get_datalayer() -> DataLayer:
    if _instance is None:
        raise DataLayerError("Data layer not initialized. Call init_datalayer() first")
    return _instance


def reset_datalayer() -> None:
    """Forget the process-wide instance (tests, logout)."""
    global _instance
    _instance = None
