"""
Depth ladder computation.

build_depth_view() is a pure function of the side-store contents: it never
patches a previous result, so cumulative sums cannot drift across messages.

Steps per side:
1. keep levels with quantity > 0
2. sort (bids descending, asks ascending), truncate to depth
3. running cumulative quantity, total = price * quantity
4. depth_percent = cumulative / max(bid_total, ask_total) * 100, with 1 as the
   divisor when both sides are empty
Then the spread from the two best levels.
"""

from __future__ import annotations

from typing import Mapping, Optional

import numpy as np

from ..types import OrderBookState, PriceLevel, Spread


def _side_levels(
    store: Mapping[float, float],
    depth: int,
    descending: bool,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return (prices, quantities, cumulative) arrays for the top `depth` levels."""
    live = [(price, qty) for price, qty in store.items() if qty > 0]
    live.sort(key=lambda level: level[0], reverse=descending)
    live = live[:depth]

    if not live:
        empty = np.empty(0, dtype=np.float64)
        return empty, empty, empty

    prices = np.fromiter((p for p, _ in live), dtype=np.float64, count=len(live))
    quantities = np.fromiter((q for _, q in live), dtype=np.float64, count=len(live))
    return prices, quantities, np.cumsum(quantities)


def _to_levels(
    prices: np.ndarray,
    quantities: np.ndarray,
    cumulative: np.ndarray,
    max_cumulative: float,
) -> list[PriceLevel]:
    totals = prices * quantities
    percents = cumulative / max_cumulative * 100.0
    return [
        PriceLevel(
            price=float(prices[i]),
            quantity=float(quantities[i]),
            total=float(totals[i]),
            cumulative=float(cumulative[i]),
            depth_percent=float(percents[i]),
        )
        for i in range(len(prices))
    ]


def compute_spread(bids: list[PriceLevel], asks: list[PriceLevel]) -> Optional[Spread]:
    """Spread between best ask and best bid; None unless both sides have a level."""
    if not bids or not asks:
        return None
    best_ask = asks[0].price
    value = best_ask - bids[0].price
    return Spread(value=value, percent=value / best_ask * 100.0)


def build_depth_view(
    bids: Mapping[float, float],
    asks: Mapping[float, float],
    depth: int = 10,
) -> OrderBookState:
    """
    Project both side-stores into the displayable depth ladder.

    Args:
        bids: price -> quantity for the bid side
        asks: price -> quantity for the ask side
        depth: Levels kept per side

    Returns OrderBookState with bids descending, asks ascending.
    """
    bid_prices, bid_qty, bid_cum = _side_levels(bids, depth, descending=True)
    ask_prices, ask_qty, ask_cum = _side_levels(asks, depth, descending=False)

    bid_total = float(bid_cum[-1]) if len(bid_cum) else 0.0
    ask_total = float(ask_cum[-1]) if len(ask_cum) else 0.0
    # 1 only stands in for an empty book; fractional totals still scale to 100
    max_cumulative = max(bid_total, ask_total) or 1.0

    bid_levels = _to_levels(bid_prices, bid_qty, bid_cum, max_cumulative)
    ask_levels = _to_levels(ask_prices, ask_qty, ask_cum, max_cumulative)

    return OrderBookState(
        bids=bid_levels,
        asks=ask_levels,
        spread=compute_spread(bid_levels, ask_levels),
    )
