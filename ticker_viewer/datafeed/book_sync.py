"""
Order book synchronizer.

Supports both provider capability models:
- Full replacement: every message carries the whole (top-N) book
- Incremental: one snapshot, then ordered (side, price, qty) delta batches

After every applied message the displayed ladder is rebuilt from the
side-stores by engine.depth.build_depth_view(). There is no fallback source
for depth, so the connection runs on a small finite reconnect budget and
reports "unavailable" once it is spent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..config import FeedConfig
from ..engine.depth import build_depth_view
from ..errors import ConfigurationError
from ..types import (
    BookMessage,
    BookMessageKind,
    ConnectivityStatus,
    OrderBookState,
    SupervisorState,
)
from .notify import ChangeNotifier
from .orderbook import OrderBook
from .providers import BookProvider
from .supervisor import ConnectionSupervisor, Sleep
from .transport import Transport

logger = logging.getLogger(__name__)

BookListener = Callable[[OrderBookState, ConnectivityStatus], None]

_STATUS_BY_STATE = {
    SupervisorState.IDLE: ConnectivityStatus.CONNECTING,
    SupervisorState.CONNECTING: ConnectivityStatus.CONNECTING,
    SupervisorState.RECONNECTING: ConnectivityStatus.CONNECTING,
    SupervisorState.OPEN: ConnectivityStatus.CONNECTED,
    SupervisorState.CLOSED: ConnectivityStatus.ERROR,
    SupervisorState.UNAVAILABLE: ConnectivityStatus.UNAVAILABLE,
}


class OrderBookSynchronizer:
    """
    Consistent top-N depth view for one product.

    Usage:
        sync = OrderBookSynchronizer(transport, CoinbaseLevel2("ETH-USD"))
        sync.start()
        state = sync.get_order_book_state()
        ...
        await sync.stop()

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        transport: Transport,
        provider: BookProvider,
        config: Optional[FeedConfig] = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or FeedConfig()
        self.provider = provider
        self.depth = self.config.depth
        self.book = OrderBook(self.config.product_id)

        self._state = OrderBookState.empty()
        self._status = ConnectivityStatus.CONNECTING
        self._running = False
        self._notifier = ChangeNotifier("order-book")

        self.supervisor = ConnectionSupervisor(
            provider.url,
            transport,
            self._on_message,
            subscribe=provider.subscribe_payload,
            on_state_change=self._on_connection_state,
            base_delay_ms=self.config.base_backoff_ms,
            cap_delay_ms=self.config.cap_backoff_ms,
            max_attempts=self.config.book_max_reconnect_attempts,
            connect_timeout_ms=self.config.connect_timeout_ms,
            name="order-book",
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------

    def get_order_book_state(self, depth: Optional[int] = None) -> OrderBookState:
        """Current ladder. A depth other than the configured one is computed on demand."""
        if depth is None or depth == self.depth:
            return self._state
        if depth <= 0:
            raise ConfigurationError("depth must be positive", field="depth", value=depth)
        return build_depth_view(self.book.bids, self.book.asks, depth)

    def get_connectivity_status(self) -> ConnectivityStatus:
        return self._status

    def subscribe(self, callback: BookListener) -> Callable[[], None]:
        """Call `callback(state, status)` after every change. Returns an unsubscribe handle."""
        return self._notifier.subscribe(callback)

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Connect. After "unavailable", calling stop() then start() is the explicit reset."""
        if self._running:
            return

        self._running = True
        self._set_status(ConnectivityStatus.CONNECTING)
        logger.info(
            f"[order-book] Starting: provider={self.provider.name} depth={self.depth} "
            f"max_reconnects={self.config.book_max_reconnect_attempts}"
        )
        self.supervisor.start()

    async def stop(self) -> None:
        """Close the connection, cancel timers and release the side-stores. Idempotent."""
        self._running = False
        await self.supervisor.stop()
        self.book.clear()
        self._state = OrderBookState.empty()

    async def restart(self) -> None:
        """Leave "unavailable": fresh connection with a fresh reconnect budget."""
        await self.stop()
        self.start()

    async def __aenter__(self) -> OrderBookSynchronizer:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Message path
    # ------------------------------------------------------------------

    def _on_message(self, raw: str) -> None:
        if not self._running:
            return
        # ParseError propagates to the supervisor, which drops the message
        msg = self.provider.parse(raw)
        if msg is None:
            return
        self.apply_message(msg)

    def apply_message(self, msg: BookMessage) -> OrderBookState:
        """
        Apply one parsed message to the side-stores and rebuild the ladder.

        Messages are applied strictly in the order they are passed in.
        """
        if msg.kind == BookMessageKind.UPDATE:
            self.book.apply_changes(msg.changes)
        else:
            # SNAPSHOT and REPLACE both swap the whole book
            self.book.load_snapshot(msg.bids, msg.asks)

        self._state = build_depth_view(self.book.bids, self.book.asks, self.depth)
        self._notifier.notify(self._state, self._status)
        return self._state

    def _on_connection_state(self, state: SupervisorState) -> None:
        if state == SupervisorState.OPEN:
            # New session: its snapshot must not mix with the previous session's deltas
            self.book.clear()
            self._state = OrderBookState.empty()

        status = _STATUS_BY_STATE.get(state)
        if status is not None and self._running:
            self._set_status(status)

    def _set_status(self, status: ConnectivityStatus) -> None:
        if status == self._status:
            return
        logger.info(f"[order-book] Status: {self._status.value} -> {status.value}")
        self._status = status
        self._notifier.notify(self._state, self._status)
