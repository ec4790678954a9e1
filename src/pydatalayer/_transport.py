"""HTTP transport for fetching remote configuration documents."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import aiohttp

from pydatalayer._constants import USER_AGENT
from pydatalayer.exceptions import DataLayerNetworkError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    """Status, headers and body text of a completed request."""

    status: int
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class RuleSetTransport(Protocol):
    """Anything that can GET a URL; tests substitute canned responses."""

    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse: ...


class HttpTransport:
    """aiohttp-backed GET transport."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float = 10.0) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse:
        request_headers: dict[str, str] = {"accept": "application/json", "user-agent": USER_AGENT}
        request_headers.update(headers)

        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers=request_headers, timeout=self._timeout) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, text=text, headers=dict(resp.headers))
        except asyncio.TimeoutError as exc:
            raise DataLayerNetworkError(f"Request to {url} timed out", url=url) from exc
        except aiohttp.ClientError as exc:
            raise DataLayerNetworkError(f"Request to {url} failed: {exc}", url=url) from exc
