"""
Shared fixtures: an in-memory transport that drives the supervisor and both
controllers without a network.

FakeTransport.connect() consumes `connect_script` (falls back to `default_connect`):
- "ok"            -> returns a new FakeConnection
- "hang"          -> never completes (exercises the connect timeout)
- an exception    -> raised from connect()

FakeTransport.fetch() consumes `fetch_script` (falls back to `default_fetch`):
- a dict          -> returned as the decoded JSON document
- an exception    -> raised from fetch()
- an asyncio.Future -> awaited (lets a test hold a request in flight)
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Optional, Union

import orjson
import pytest

from ticker_viewer.errors import TransportError


class FakeConnection:
    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise TransportError("send on closed connection", url=self.url)
        self.sent.append(data)

    async def receive(self) -> Optional[str]:
        if self.closed:
            return None
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(None)

    def push(self, message: Union[str, dict, list]) -> None:
        """Deliver one inbound message (dicts are JSON-encoded)."""
        if not isinstance(message, str):
            message = orjson.dumps(message).decode()
        self._inbox.put_nowait(message)

    def drop(self) -> None:
        """Peer closes the connection."""
        self._inbox.put_nowait(None)

    def fail(self, exc: BaseException) -> None:
        """Transport error while reading."""
        self._inbox.put_nowait(exc)


class FakeTransport:
    def __init__(self) -> None:
        self.connect_script: deque = deque()
        self.default_connect: Any = "ok"
        self.connect_calls: list[str] = []
        self.connections: list[FakeConnection] = []

        self.fetch_script: deque = deque()
        self.default_fetch: Any = TransportError("no fetch scripted")
        self.fetch_calls: list[str] = []

        self.closed = False

    @property
    def last_connection(self) -> FakeConnection:
        return self.connections[-1]

    async def connect(self, url: str) -> FakeConnection:
        self.connect_calls.append(url)
        outcome = self.connect_script.popleft() if self.connect_script else self.default_connect

        if outcome == "hang":
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome

        conn = FakeConnection(url)
        self.connections.append(conn)
        return conn

    async def fetch(self, url: str) -> Any:
        self.fetch_calls.append(url)
        outcome = self.fetch_script.popleft() if self.fetch_script else self.default_fetch

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, asyncio.Future):
            return await outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """
    Stands in for asyncio.sleep: records the delay, then yields once.

    Delays of `hold_from` seconds or more never finish (until cancelled), so a
    60s poll interval parks the poll loop while backoff delays run instantly.
    """

    def __init__(self, hold_from: float = 60.0) -> None:
        self.hold_from = hold_from
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if seconds >= self.hold_from:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def wait_until() -> Callable:
    """Poll a predicate on the event loop until it holds (or fail after timeout)."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)

    return _wait_until


# ----------------------------------------------------------------------
# Wire messages
# ----------------------------------------------------------------------


def coinbase_ticker(price: float, open_24h: float = 1750.0, product_id: str = "ETH-USD") -> dict:
    return {
        "type": "ticker",
        "product_id": product_id,
        "price": str(price),
        "open_24h": str(open_24h),
        "high_24h": "1850.00",
        "low_24h": "1740.00",
        "volume_24h": "123456.78",
    }


def coingecko_summary(price: float, change: float = 25.0) -> dict:
    return {
        "id": "ethereum",
        "market_data": {
            "current_price": {"usd": price},
            "price_change_24h": change,
            "price_change_percentage_24h": change / (price - change) * 100,
            "high_24h": {"usd": 1850.0},
            "low_24h": {"usd": 1740.0},
            "total_volume": {"usd": 9_876_543_210.0},
        },
    }


def coinbase_snapshot(bids: list, asks: list, product_id: str = "ETH-USD") -> dict:
    return {
        "type": "snapshot",
        "product_id": product_id,
        "bids": [[str(p), str(q)] for p, q in bids],
        "asks": [[str(p), str(q)] for p, q in asks],
    }


def coinbase_l2update(changes: list, product_id: str = "ETH-USD") -> dict:
    return {
        "type": "l2update",
        "product_id": product_id,
        "changes": [[side, str(p), str(q)] for side, p, q in changes],
    }


@pytest.fixture
def messages():
    """Namespace of wire message builders."""

    class _Messages:
        ticker = staticmethod(coinbase_ticker)
        summary = staticmethod(coingecko_summary)
        snapshot = staticmethod(coinbase_snapshot)
        l2update = staticmethod(coinbase_l2update)

    return _Messages
