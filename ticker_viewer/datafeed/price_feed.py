"""
Price feed controller: push primary raced against a polled fallback.

Two channels run for the whole session:
1. Poll loop - fetches the REST summary now and every poll_interval_ms and
   always applies it (baseline that works from every region)
2. Primary push - supervised websocket ticker, unbounded retries by default;
   while open the status is "live"

Merge rule: last write wins. There is no timestamp or sequence arbitration
between the two channels, so a stale poll landing after a fresher push tick
overwrites it. prev_price follows whatever was applied last.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from ..config import FeedConfig
from ..errors import ParseError, PollFailure, TransportError
from ..types import ConnectivityStatus, PriceSnapshot, SupervisorState, TickerUpdate
from .notify import ChangeNotifier
from .providers import CoinGeckoSummary, TickerProvider
from .supervisor import ConnectionSupervisor, Sleep
from .transport import Transport

logger = logging.getLogger(__name__)

PriceListener = Callable[[PriceSnapshot, ConnectivityStatus], None]


class PriceFeedController:
    """
    One PriceSnapshot + ConnectivityStatus from unreliable sources.

    Usage:
        feed = PriceFeedController(transport, CoinbaseTicker("ETH-USD"), CoinGeckoSummary("ETH-USD"))
        feed.start()
        snapshot = feed.get_price_snapshot()
        ...
        await feed.stop()

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        transport: Transport,
        primary: TickerProvider,
        fallback: CoinGeckoSummary,
        config: Optional[FeedConfig] = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or FeedConfig()
        self.primary = primary
        self.fallback = fallback
        self._transport = transport
        self._sleep = sleep

        self._snapshot = PriceSnapshot()
        self._status = ConnectivityStatus.CONNECTING
        self._poll_outcome: Optional[ConnectivityStatus] = None

        # Bumped on start/stop; in-flight poll results from an older generation are dropped
        self._generation = 0
        self._running = False
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._notifier = ChangeNotifier("price-feed")

        # Diagnostics
        self.last_source: Optional[str] = None
        self.last_poll_error: Optional[PollFailure] = None
        self.poll_count = 0
        self.poll_failures = 0

        self.supervisor = ConnectionSupervisor(
            primary.url,
            transport,
            self._on_primary_message,
            subscribe=primary.subscribe_payload,
            on_state_change=self._on_primary_state,
            base_delay_ms=self.config.base_backoff_ms,
            cap_delay_ms=self.config.cap_backoff_ms,
            max_attempts=self.config.price_max_reconnect_attempts,
            connect_timeout_ms=self.config.connect_timeout_ms,
            name="price-primary",
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------

    def get_price_snapshot(self) -> PriceSnapshot:
        return self._snapshot

    def get_connectivity_status(self) -> ConnectivityStatus:
        return self._status

    def subscribe(self, callback: PriceListener) -> Callable[[], None]:
        """Call `callback(snapshot, status)` after every change. Returns an unsubscribe handle."""
        return self._notifier.subscribe(callback)

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start both channels. Calling start() after stop() restarts from scratch."""
        if self._running:
            return

        self._running = True
        self._generation += 1
        self._snapshot = PriceSnapshot()
        self._poll_outcome = None
        self._refresh_status()

        logger.info(
            f"[price-feed] Starting: primary={self.primary.name} "
            f"fallback={self.fallback.name} poll={self.config.poll_interval_ms}ms"
        )
        self._poll_task = asyncio.create_task(
            self._poll_loop(self._generation), name="price-feed-poll"
        )
        self.supervisor.start()

    async def stop(self) -> None:
        """Cancel the poll timer and the primary connection, drop the snapshot. Idempotent."""
        self._running = False
        self._generation += 1

        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self.supervisor.stop()
        self._snapshot = PriceSnapshot()
        self._poll_outcome = None

    async def restart(self) -> None:
        await self.stop()
        self.start()

    async def __aenter__(self) -> PriceFeedController:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Secondary channel: REST poll
    # ------------------------------------------------------------------

    async def _poll_loop(self, generation: int) -> None:
        interval = self.config.poll_interval_ms / 1000
        while generation == self._generation:
            await self.poll_once(generation)
            await self._sleep(interval)

    async def poll_once(self, generation: Optional[int] = None) -> bool:
        """
        Fetch and apply one fallback summary.

        Never raises. Returns True if the summary was applied.
        """
        if generation is None:
            generation = self._generation
        self.poll_count += 1

        try:
            doc = await self._transport.fetch(self.fallback.url)
            update = self.fallback.parse(doc)
        except (TransportError, ParseError) as e:
            self._record_poll_failure(e, generation)
            return False
        except Exception as e:
            logger.error(f"[price-poll] Unexpected poll error: {e!r}")
            self._record_poll_failure(e, generation)
            return False

        if generation != self._generation:
            logger.debug("[price-poll] Discarding summary that arrived after stop")
            return False

        self._poll_outcome = ConnectivityStatus.CONNECTED
        self._apply(update, source=self.fallback.name)
        return True

    def _record_poll_failure(self, error: Exception, generation: int) -> None:
        if generation != self._generation:
            return
        self.poll_failures += 1
        self.last_poll_error = PollFailure(
            f"{self.fallback.name} poll failed: {error!r}", component="price-poll"
        )
        logger.warning(f"[price-poll] {self.last_poll_error}")
        self._poll_outcome = ConnectivityStatus.ERROR
        self._refresh_status()

    # ------------------------------------------------------------------
    # Primary channel: websocket ticker
    # ------------------------------------------------------------------

    def _on_primary_message(self, raw: str) -> None:
        if not self._running:
            return
        # ParseError propagates to the supervisor, which drops the message
        update = self.primary.parse(raw)
        if update is None:
            return
        self._apply(update, source=self.primary.name)

    def _on_primary_state(self, state: SupervisorState) -> None:
        if state == SupervisorState.UNAVAILABLE:
            logger.warning("[price-feed] Primary gave up; continuing on polled summary only")
        if self._running:
            self._refresh_status()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _derive_status(self) -> ConnectivityStatus:
        if self.supervisor.is_open:
            return ConnectivityStatus.LIVE
        return self._poll_outcome or ConnectivityStatus.CONNECTING

    def _refresh_status(self) -> None:
        status = self._derive_status()
        if status == self._status:
            return
        logger.info(f"[price-feed] Status: {self._status.value} -> {status.value}")
        self._status = status
        self._notifier.notify(self._snapshot, self._status)

    def _apply(self, update: TickerUpdate, source: str) -> None:
        """Last write wins: overwrite with whatever arrived, keep fields the update lacks."""
        prev = self._snapshot

        open_24h = update.open_24h if update.open_24h is not None else prev.open_24h
        if open_24h is not None:
            price_change = update.price - open_24h
            price_change_percent = (price_change / open_24h * 100) if open_24h else None
        else:
            price_change = update.price_change
            price_change_percent = update.price_change_percent

        self._snapshot = PriceSnapshot(
            price=update.price,
            prev_price=prev.price,
            price_change=price_change,
            price_change_percent=price_change_percent,
            high_24h=update.high_24h if update.high_24h is not None else prev.high_24h,
            low_24h=update.low_24h if update.low_24h is not None else prev.low_24h,
            volume_24h=update.volume_24h if update.volume_24h is not None else prev.volume_24h,
            open_24h=open_24h,
        )
        self.last_source = source

        status = self._derive_status()
        if status != self._status:
            logger.info(f"[price-feed] Status: {self._status.value} -> {status.value}")
            self._status = status
        self._notifier.notify(self._snapshot, self._status)
