"""
Local order book side-stores.

HOT PATH: apply_changes() runs for every delta batch (exchange-throttled, ~10/s).

Strategy:
1. dict[float, float] per side for O(1) upsert/delete of individual prices
2. No cached ordering; the displayed ladder is recomputed from scratch by
   engine.depth after each message, so there is nothing to drift
3. Quantity 0 means "no level": it is never stored
"""

from __future__ import annotations

from typing import Iterable

BUY = "buy"
SELL = "sell"


class OrderBook:
    """
    Authoritative price -> quantity stores for both sides of one product.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = ('product_id', 'bids', 'asks', 'message_count')

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id

        # Core data: price -> quantity
        self.bids: dict[float, float] = {}
        self.asks: dict[float, float] = {}

        self.message_count: int = 0

    def load_snapshot(
        self,
        bids: Iterable[tuple[float, float]],
        asks: Iterable[tuple[float, float]],
    ) -> None:
        """
        Replace both sides wholesale.

        Used for the initial snapshot of the incremental model and for every
        message of the full-replacement model.
        """
        self.bids.clear()
        self.asks.clear()

        for price, qty in bids:
            if qty > 0:
                self.bids[price] = qty

        for price, qty in asks:
            if qty > 0:
                self.asks[price] = qty

        self.message_count += 1

    def apply_changes(self, changes: Iterable[tuple[str, float, float]]) -> None:
        """
        Apply an ordered batch of (side, price, qty) upserts.

        qty == 0 deletes the level; deleting an absent level is a no-op.
        """
        for side, price, qty in changes:
            store = self.bids if side == BUY else self.asks
            if qty == 0:
                store.pop(price, None)
            else:
                store[price] = qty

        self.message_count += 1

    def clear(self) -> None:
        self.bids.clear()
        self.asks.clear()
