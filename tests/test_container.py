from __future__ import annotations

import pytest

from pydatalayer.config import DataLayerConfig, ProjectProfile
from pydatalayer.exceptions import DataLayerError, ReadOnlyDataLayerError
from pydatalayer.persistence import MemoryStorage
from pydatalayer.state.container import DataLayer
from pydatalayer.state.events import DataLayerUpdate, UpdateType
from pydatalayer.state.tree import PageContext

_DAY = 86400.0


class _Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _collect(datalayer: DataLayer) -> list[DataLayerUpdate]:
    seen: list[DataLayerUpdate] = []
    datalayer.subscribe(seen.append)
    return seen


def test_fresh_start_builds_default_tree() -> None:
    config = DataLayerConfig(project=ProjectProfile(partner_data={"partner": "acme"}))
    datalayer = DataLayer(config, storage=MemoryStorage())

    start_type = datalayer.start(PageContext(path="/products", title="Products"))

    assert start_type is UpdateType.INITIALIZED
    assert datalayer.ready is True
    assert datalayer.read("projectName") == "luma3"
    assert datalayer.read("page") == {"name": "products", "title": "Products", "path": "/products"}
    assert datalayer.read("partnerData") == {"partner": "acme"}
    assert datalayer.read("cart") == {}


def test_writes_before_start_are_queued_and_notified_once() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    seen = _collect(datalayer)

    datalayer.write({"product": {"id": "p1"}})
    datalayer.write({"product": {"name": "Shoe"}})
    datalayer.write({"page": {"section": "catalog"}})

    assert seen == []
    assert datalayer.read() is None
    assert datalayer.get_queue_status().data_layer_queue_length == 3

    datalayer.start()

    assert [update.type for update in seen] == [UpdateType.INITIALIZED, UpdateType.UPDATED]
    # the initialized notification already reflects every queued write
    assert seen[0].data["product"] == {"id": "p1", "name": "Shoe"}
    assert seen[1].data["page"]["section"] == "catalog"
    assert datalayer.get_queue_status().data_layer_queue_length == 0


def test_listeners_only_observe_ready_state() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    states: list[bool] = []
    datalayer.subscribe(lambda _update: states.append(datalayer.ready))

    datalayer.write({"a": 1})
    datalayer.start()
    datalayer.write({"b": 2})

    assert states == [True, True, True]


def test_write_after_start_merges_and_persists() -> None:
    storage = MemoryStorage()
    datalayer = DataLayer(storage=storage)
    datalayer.start()
    seen = _collect(datalayer)

    datalayer.write({"person": {"name": {"firstName": "Ada"}}})

    assert datalayer.read("person.name") == {"firstName": "Ada", "lastName": ""}
    assert [update.type for update in seen] == [UpdateType.UPDATED]

    restored = DataLayer(storage=storage)
    assert restored.start() is UpdateType.RESTORED
    assert restored.read("person.name.firstName") == "Ada"


def test_write_with_merge_false_replaces_top_level_key() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    datalayer.start()

    datalayer.write({"homeAddress": {"city": "Basel"}}, merge=False)

    assert datalayer.read("homeAddress") == {"city": "Basel"}
    assert datalayer.read("mobilePhone") == {"number": ""}


def test_invalid_write_is_dropped(caplog: pytest.LogCaptureFixture) -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    datalayer.start()
    before = datalayer.read()

    datalayer.write(["not", "a", "mapping"])  # type: ignore[arg-type]

    assert datalayer.read() == before
    assert "Invalid updates" in caplog.text


def test_read_before_start_returns_none() -> None:
    datalayer = DataLayer(storage=MemoryStorage())

    assert datalayer.read() is None
    assert datalayer.read("cart") is None
    assert datalayer.view.get("cart", {}) == {}


def test_read_returns_isolated_copies() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    datalayer.start()

    snapshot = datalayer.read()
    snapshot["person"]["gender"] = "tampered"

    assert datalayer.read("person.gender") == ""


def test_view_rejects_mutation() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    view = datalayer.view

    with pytest.raises(DataLayerError):
        view["cart"]

    datalayer.start()
    assert "cart" in view
    assert view["page"]["name"] == ""

    with pytest.raises(ReadOnlyDataLayerError):
        view["cart"] = {}
    with pytest.raises(ReadOnlyDataLayerError):
        del view["cart"]
    with pytest.raises(ReadOnlyDataLayerError):
        view.snapshot = {}  # type: ignore[misc]


def test_stale_persisted_tree_is_replaced_with_default() -> None:
    clock = _Clock()
    storage = MemoryStorage()
    first = DataLayer(storage=storage, clock=clock)
    first.start()
    first.write({"user": {"loggedIn": True}})

    clock.now += 31 * _DAY
    second = DataLayer(storage=storage, clock=clock)

    assert second.start() is UpdateType.INITIALIZED
    assert second.read("user") is None


def test_corrupt_persisted_tree_is_a_miss() -> None:
    storage = MemoryStorage()
    storage.set_item("luma_dataLayer", "{broken")

    datalayer = DataLayer(storage=storage)

    assert datalayer.start() is UpdateType.INITIALIZED
    assert datalayer.read("projectName") == "luma3"


def test_persistence_failure_keeps_memory_state() -> None:
    datalayer = DataLayer(storage=MemoryStorage(quota_bytes=64))
    seen = _collect(datalayer)

    datalayer.start()
    datalayer.write({"product": {"id": "p1"}})

    assert datalayer.read("product.id") == "p1"
    assert [update.type for update in seen] == [UpdateType.INITIALIZED, UpdateType.UPDATED]


def test_failing_listener_does_not_block_others() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    seen: list[UpdateType] = []

    def _boom(_update: DataLayerUpdate) -> None:
        raise RuntimeError("listener failure")

    datalayer.subscribe(_boom)
    datalayer.subscribe(lambda update: seen.append(update.type))
    datalayer.start()

    assert seen == [UpdateType.INITIALIZED]


def test_unsubscribe_stops_notifications() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    seen: list[DataLayerUpdate] = []
    unsubscribe = datalayer.subscribe(seen.append)
    datalayer.start()

    unsubscribe()
    datalayer.write({"a": 1})

    assert len(seen) == 1


def test_clear_resets_state_but_keeps_form_data() -> None:
    storage = MemoryStorage()
    datalayer = DataLayer(storage=storage)
    datalayer.start()
    datalayer.write({"user": {"loggedIn": True}})
    datalayer.forms.save({"email": "ada@example.com"})

    datalayer.clear()

    assert datalayer.ready is False
    assert datalayer.read() is None
    assert storage.get_item("luma_dataLayer") is None
    assert datalayer.forms.load() == {"email": "ada@example.com"}

    datalayer.write({"page": {"section": "again"}})
    assert datalayer.start() is UpdateType.INITIALIZED
    assert datalayer.read("user") is None
    assert datalayer.read("page.section") == "again"


def test_second_start_is_ignored() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    datalayer.start()
    datalayer.write({"a": 1})

    datalayer.start()

    assert datalayer.read("a") == 1


def test_form_data_expires_after_ttl() -> None:
    clock = _Clock()
    datalayer = DataLayer(storage=MemoryStorage(), clock=clock)
    datalayer.forms.save({"firstName": "Ada"})

    clock.now += 89 * _DAY
    assert datalayer.forms.load() == {"firstName": "Ada"}

    clock.now += 2 * _DAY
    assert datalayer.forms.load() is None


def test_queue_status_reports_pending_entries_and_ages() -> None:
    clock = _Clock()
    datalayer = DataLayer(storage=MemoryStorage(), clock=clock)
    datalayer.write({"a": 1})
    datalayer.cart.add({"id": "p1", "price": 5})
    datalayer.forms.save({"email": "x@example.com"})

    status = datalayer.get_queue_status()
    assert status.ready is False
    assert status.data_layer_queue_length == 1
    assert status.cart_queue_length == 1
    assert status.data_layer_queue[0]["payload"] == {"a": 1}
    assert status.form_data_saved is True

    clock.now += 3 * _DAY
    datalayer.start()
    status = datalayer.get_queue_status()
    assert status.ready is True
    assert status.cart_queue_length == 0
    assert status.state_age_seconds == 0
    assert status.form_data_age_days == 3
    assert status.rules_cache_age_seconds is None


@pytest.mark.asyncio
async def test_wait_until_settled_resolves_after_start() -> None:
    datalayer = DataLayer(storage=MemoryStorage())
    datalayer.write({"a": 1})

    datalayer.start()
    await datalayer.wait_until_settled()

    assert datalayer.updating is False
    assert datalayer.read("a") == 1
