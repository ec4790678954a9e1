"""The state container: one canonical tree, one write entry point.

Writes issued before :meth:`DataLayer.start` completes are queued and
replayed in arrival order. Everything else reads isolated deep copies.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict
from typing import Any

from pydantic import BaseModel, ConfigDict

from pydatalayer._constants import DAY_SECONDS, form_key, rules_key, state_key
from pydatalayer._redact import redact_for_log
from pydatalayer.cart import Cart
from pydatalayer.config import DataLayerConfig
from pydatalayer.exceptions import DataLayerValidationError
from pydatalayer.forms import FormEntryStore
from pydatalayer.persistence import PersistenceAdapter, Storage, create_storage
from pydatalayer.state.events import (
    DataLayerUpdate,
    MergeMode,
    QueuedCartOperation,
    QueuedWrite,
    UpdateType,
)
from pydatalayer.state.merge import apply_update
from pydatalayer.state.tree import PageContext, build_default_tree, stamp_page
from pydatalayer.state.view import DataLayerView

_logger = logging.getLogger(__name__)

UpdateListener = Callable[[DataLayerUpdate], None]


def _validate_payload(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise DataLayerValidationError(f"updates must be a mapping, got {type(payload).__name__}")
    return copy.deepcopy(dict(payload))


class QueueStatus(BaseModel):
    """Diagnostic view of queues and durable cache ages."""

    model_config = ConfigDict(frozen=True)

    ready: bool
    updating: bool
    data_layer_queue_length: int
    cart_queue_length: int
    data_layer_queue: list[dict[str, Any]]
    cart_queue: list[dict[str, Any]]
    state_age_seconds: float | None = None
    form_data_saved: bool = False
    form_data_age_seconds: float | None = None
    form_data_age_days: int | None = None
    rules_cache_age_seconds: float | None = None


class DataLayer:
    """Canonical session state tree with a controlled read/write API.

    Usage::

        datalayer = DataLayer(config)
        datalayer.write({"product": {"id": "p1"}})  # queued
        datalayer.start(PageContext(path="/products/p1", title="Product"))
        datalayer.read("product.id")
    """

    def __init__(
        self,
        config: DataLayerConfig | None = None,
        *,
        storage: Storage | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or DataLayerConfig()
        self._persistence = PersistenceAdapter(
            storage if storage is not None else create_storage(self._config),
            clock=clock,
        )
        self._state_key = state_key(self._config.storage_prefix)
        self._tree: dict[str, Any] | None = None
        self._ready = False
        self._updating = False
        self._draining = False
        self._queue: list[QueuedWrite] = []
        self._cart_queue: list[QueuedCartOperation] = []
        self._listeners: list[UpdateListener] = []
        self._settled = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._view = DataLayerView(self)
        self._cart = Cart(self)
        self._forms = FormEntryStore(
            self._persistence,
            form_key(self._config.storage_prefix),
            ttl=self._config.form_ttl,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> DataLayerConfig:
        return self._config

    @property
    def persistence(self) -> PersistenceAdapter:
        return self._persistence

    @property
    def view(self) -> DataLayerView:
        """Read-only accessor; the only externally visible handle on the tree."""
        return self._view

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def forms(self) -> FormEntryStore:
        return self._forms

    @property
    def initialized(self) -> bool:
        """Whether a tree exists (it may still be replaying its startup queue)."""
        return self._tree is not None

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def updating(self) -> bool:
        return self._updating

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, page: PageContext | None = None) -> UpdateType:
        """Establish the initial tree and replay everything queued so far.

        The tree is restored from persistence when a record within
        ``state_ttl`` exists, otherwise built fresh. The generic queue is
        drained first, then the cart queue. Listeners are notified only once
        all mutations are done: the initialized/restored notification first,
        then one ``updated`` notification per non-empty queue drain.
        """
        if self._tree is not None:
            _logger.warning("Data layer already started; ignoring start()")
            return UpdateType.UPDATED

        page = page or PageContext()
        snapshot = self._persistence.load(self._state_key, self._config.state_ttl, evict_stale=True)
        if isinstance(snapshot, dict):
            tree = snapshot
            start_type = UpdateType.RESTORED
        else:
            tree = build_default_tree(self._config.project)
            start_type = UpdateType.INITIALIZED

        self._commit(stamp_page(tree, page), persist=True)
        _logger.debug("Data layer %s for page %s", start_type, page.full_path)

        pending: list[DataLayerUpdate] = []
        self._draining = True
        try:
            if self._drain_writes():
                self._persist()
                pending.append(self._snapshot_update(UpdateType.UPDATED))
            if self._drain_cart_operations():
                self._persist()
                pending.append(self._snapshot_update(UpdateType.UPDATED))
        finally:
            self._draining = False

        self._ready = True
        self._notify(self._snapshot_update(start_type))
        for update in pending:
            self._notify(update)
        self._settled.set()
        return start_type

    def clear(self) -> None:
        """Drop the in-memory tree, both queues and the durable state record.

        Form entry data is left untouched. :meth:`start` may be called again
        afterwards.
        """
        self._queue.clear()
        self._cart_queue.clear()
        self._persistence.remove(self._state_key)
        self._tree = None
        self._ready = False
        self._settled.clear()
        _logger.debug("Data layer cleared")

    async def wait_until_settled(self) -> None:
        """Wait until the tree is ready, both queues are drained and no write is in flight."""
        await self._settled.wait()
        while self._updating:
            await self._idle.wait()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read(self, path: str | None = None) -> Any:
        """Return a deep copy of the subtree at dot-separated *path*.

        Returns ``None`` when the container has not been started or the path
        does not exist.
        """
        if self._tree is None:
            _logger.warning("Data layer not initialized yet")
            return None
        if not path:
            return copy.deepcopy(self._tree)

        value: Any = self._tree
        for key in path.split("."):
            if isinstance(value, Mapping) and key in value:
                value = value[key]
            else:
                return None
        return copy.deepcopy(value)

    def subscribe(self, listener: UpdateListener) -> Callable[[], None]:
        """Register *listener* for change notifications; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write(self, payload: Mapping[str, Any], merge: bool | MergeMode = True) -> None:
        """Apply *payload* to the tree, or queue it until :meth:`start` runs.

        ``merge=True`` deep-merges; ``merge=False`` replaces only the
        top-level keys present in *payload*. Non-mapping payloads are logged
        and dropped.
        """
        try:
            update = _validate_payload(payload)
        except DataLayerValidationError as exc:
            _logger.error("Invalid updates provided to write(): %s", exc)
            return

        mode = merge if isinstance(merge, MergeMode) else MergeMode.from_flag(merge)
        if not self._ready:
            self._queue.append(QueuedWrite(payload=update, mode=mode))
            _logger.debug("Queued %s update until data layer is ready (%d pending)", mode, len(self._queue))
            return

        _logger.debug("Applying %s update: %s", mode, redact_for_log(update))
        self._apply(update, mode)

    def _apply(self, payload: Mapping[str, Any], mode: MergeMode) -> None:
        next_tree = apply_update(self._tree, payload, mode)
        self._commit(next_tree, persist=not self._draining)
        if not self._draining:
            self._notify(self._snapshot_update(UpdateType.UPDATED))

    def _commit(self, tree: dict[str, Any], *, persist: bool) -> None:
        self._updating = True
        self._idle.clear()
        try:
            self._tree = tree
            if persist:
                self._persist()
        finally:
            self._updating = False
            self._idle.set()

    def _persist(self) -> None:
        # In-memory state stays authoritative when this fails.
        self._persistence.store(self._state_key, self._tree)

    def _enqueue_cart_operation(self, operation: QueuedCartOperation) -> None:
        self._cart_queue.append(operation)
        _logger.debug("Queued cart %s until data layer is ready (%d pending)", operation.kind, len(self._cart_queue))

    def _drain_writes(self) -> int:
        count = 0
        while self._queue:
            entry = self._queue.pop(0)
            self._apply(entry.payload, entry.mode)
            count += 1
        return count

    def _drain_cart_operations(self) -> int:
        count = 0
        while self._cart_queue:
            operation = self._cart_queue.pop(0)
            update = self._cart.build_update(operation.kind, operation.arguments)
            if update is not None:
                self._apply(update, MergeMode.SHALLOW)
                count += 1
        return count

    # ------------------------------------------------------------------
    # Notifications & diagnostics
    # ------------------------------------------------------------------

    def _snapshot_update(self, update_type: UpdateType) -> DataLayerUpdate:
        return DataLayerUpdate(type=update_type, data=copy.deepcopy(self._tree) or {})

    def _notify(self, update: DataLayerUpdate) -> None:
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception:
                _logger.warning("Data layer listener %r failed", listener, exc_info=True)

    def get_queue_status(self) -> QueueStatus:
        """Return pending queue lengths and durable cache ages."""
        persistence = self._persistence
        form_age = persistence.age(self._forms.key)
        return QueueStatus(
            ready=self._ready,
            updating=self._updating,
            data_layer_queue_length=len(self._queue),
            cart_queue_length=len(self._cart_queue),
            data_layer_queue=[asdict(entry) for entry in self._queue],
            cart_queue=[asdict(entry) for entry in self._cart_queue],
            state_age_seconds=persistence.age(self._state_key),
            form_data_saved=form_age is not None,
            form_data_age_seconds=form_age,
            form_data_age_days=None if form_age is None else int(form_age // DAY_SECONDS),
            rules_cache_age_seconds=persistence.age(rules_key(self._config.storage_prefix)),
        )
