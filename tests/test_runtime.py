from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator, Mapping
from typing import Any

import aiohttp
import pytest

from pydatalayer._transport import HttpResponse, HttpTransport
from pydatalayer.config import DataLayerConfig
from pydatalayer.exceptions import DataLayerError, DataLayerNetworkError
from pydatalayer.persistence import MemoryStorage
from pydatalayer.runtime import DataLayerRuntime, get_datalayer, init_datalayer, reset_datalayer
from pydatalayer.state.events import UpdateType
from pydatalayer.state.tree import PageContext
from pydatalayer.triggers.page import SimulatedPage

_RULES = {
    "data": [
        {"event": "productView", "page": "/products/*"},
        {"event": "addToCart", "element": ".add-to-cart", "preventDefaultAction": False},
    ]
}


class _StaticTransport:
    def __init__(self, body: Mapping[str, Any] | None) -> None:
        self._body = body
        self.requests = 0

    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse:
        self.requests += 1
        if self._body is None:
            raise DataLayerNetworkError("offline", url=url)
        return HttpResponse(status=200, text=json.dumps(self._body))


class _FailingSession:
    def __init__(self, exc: BaseException) -> None:
        self._exc = exc

    def get(self, url: str, **_kwargs: Any) -> Any:
        raise self._exc


@pytest.fixture
def fresh_singleton() -> Iterator[None]:
    reset_datalayer()
    yield
    reset_datalayer()


@pytest.mark.asyncio
async def test_runtime_starts_container_and_runs_rules() -> None:
    transport = _StaticTransport(_RULES)
    page = SimulatedPage(path="/products/p1", title="Product")

    async with DataLayerRuntime(storage=MemoryStorage(), transport=transport) as runtime:
        runtime.datalayer.write({"product": {"id": "p1"}})
        start_type = await runtime.start(host=page)

        assert start_type is UpdateType.INITIALIZED
        assert runtime.datalayer.read("page.name") == "product"
        assert page.event_names() == ["productView"]
        assert page.listener_count("click") == 1
        assert runtime.engine is not None

    assert page.listener_count("click") == 0
    assert transport.requests == 1


@pytest.mark.asyncio
async def test_runtime_without_rules_still_starts_container() -> None:
    page = SimulatedPage(path="/")

    async with DataLayerRuntime(storage=MemoryStorage(), transport=_StaticTransport(None)) as runtime:
        await runtime.start(host=page)

        assert runtime.datalayer.ready is True
        assert page.dispatched == []


@pytest.mark.asyncio
async def test_runtime_start_without_host_skips_engine() -> None:
    transport = _StaticTransport(_RULES)

    async with DataLayerRuntime(storage=MemoryStorage(), transport=transport) as runtime:
        await runtime.start(PageContext(path="/cart", title="Cart"))

        assert runtime.engine is None
        assert transport.requests == 0
        assert await runtime.refresh_rules() is not None
        assert transport.requests == 1


@pytest.mark.asyncio
async def test_runtime_requires_context_manager() -> None:
    runtime = DataLayerRuntime(storage=MemoryStorage(), transport=_StaticTransport(_RULES))

    with pytest.raises(DataLayerError):
        await runtime.start()


@pytest.mark.asyncio
async def test_runtime_leaves_external_session_open() -> None:
    async with aiohttp.ClientSession() as session:
        async with DataLayerRuntime(storage=MemoryStorage(), session=session):
            pass
        assert session.closed is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()],
)
async def test_http_transport_wraps_client_errors(exc: BaseException) -> None:
    transport = HttpTransport(_FailingSession(exc))  # type: ignore[arg-type]

    with pytest.raises(DataLayerNetworkError) as exc_info:
        await transport.get("http://shop.test/custom-events.json", {})

    assert exc_info.value.url == "http://shop.test/custom-events.json"


def test_singleton_lifecycle(fresh_singleton: None) -> None:
    with pytest.raises(DataLayerError):
        get_datalayer()

    first = init_datalayer(DataLayerConfig(storage_prefix="test"), storage=MemoryStorage())
    second = init_datalayer()

    assert first is second
    assert get_datalayer() is first

    reset_datalayer()
    with pytest.raises(DataLayerError):
        get_datalayer()
