"""
Injectable network transport.

The supervisor and controllers only talk to the Transport/Connection protocols,
so tests drive them with an in-memory fake and production uses aiohttp.

- connect(url) -> Connection: persistent websocket
- fetch(url) -> decoded JSON document (REST polling)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import aiohttp
import orjson

from ..errors import TransportError

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """One open real-time connection."""

    async def send(self, data: str) -> None: ...

    async def receive(self) -> Optional[str]:
        """Next text frame, or None once the connection is closed."""
        ...

    async def close(self) -> None: ...


class Transport(Protocol):
    async def connect(self, url: str) -> Connection: ...

    async def fetch(self, url: str) -> Any: ...

    async def close(self) -> None: ...


class AiohttpConnection:
    """Connection backed by aiohttp's ClientWebSocketResponse."""

    __slots__ = ('url', '_ws')

    def __init__(self, url: str, ws: aiohttp.ClientWebSocketResponse) -> None:
        self.url = url
        self._ws = ws

    async def send(self, data: str) -> None:
        try:
            await self._ws.send_str(data)
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise TransportError(f"send failed: {e}", url=self.url) from e

    async def receive(self) -> Optional[str]:
        while True:
            msg = await self._ws.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type == aiohttp.WSMsgType.BINARY:
                return msg.data.decode("utf-8", errors="replace")
            if msg.type in (aiohttp.WSMsgType.PING, aiohttp.WSMsgType.PONG):
                continue
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(f"websocket error: {self._ws.exception()}", url=self.url)

            # CLOSE / CLOSING / CLOSED
            return None

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()


class AiohttpTransport:
    """
    Transport over a single lazily-created aiohttp.ClientSession.

    Usage:
        transport = AiohttpTransport()
        conn = await transport.connect("wss://...")
        data = await transport.fetch("https://...")
        await transport.close()
    """

    def __init__(self, fetch_timeout_sec: float = 10.0, heartbeat_sec: float = 30.0) -> None:
        self.fetch_timeout_sec = fetch_timeout_sec
        self.heartbeat_sec = heartbeat_sec
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.fetch_timeout_sec)
            )
        return self._session

    async def connect(self, url: str) -> AiohttpConnection:
        session = self._get_session()
        try:
            # Connect timeout is enforced by the supervisor
            ws = await session.ws_connect(url, heartbeat=self.heartbeat_sec)
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"connect failed: {e}", url=url) from e
        return AiohttpConnection(url, ws)

    async def fetch(self, url: str) -> Any:
        session = self._get_session()
        try:
            async with session.get(url) as resp:
                resp.raise_for_status()
                data = await resp.read()
        except asyncio.TimeoutError as e:
            raise TransportError(f"fetch timed out after {self.fetch_timeout_sec}s", url=url) from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"fetch failed: {e}", url=url) from e

        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise TransportError(f"fetch returned invalid JSON: {e}", url=url) from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
