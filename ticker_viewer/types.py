"""
Data types for Ticker Viewer.

Notes:
- NamedTuple for immutable, consumer-facing snapshots (safe to hand to the UI as-is)
- Side-stores inside the order book stay plain dicts; these types are the projection
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional


class ConnectivityStatus(str, Enum):
    """Connectivity reported to the display layer."""

    CONNECTING = "connecting"
    CONNECTED = "connected"    # A source is up, but not the preferred push source
    LIVE = "live"              # Push source is currently authoritative
    ERROR = "error"
    UNAVAILABLE = "unavailable"  # Terminal until the component is restarted


class SupervisorState(str, Enum):
    """Lifecycle of one supervised real-time connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"
    UNAVAILABLE = "unavailable"
    STOPPED = "stopped"


class PriceSnapshot(NamedTuple):
    """
    Latest price with 24h statistics.

    Every field is None until the first update lands. prev_price is the price
    immediately before the most recent update (drives up/down flashing).
    """
    price: Optional[float] = None
    prev_price: Optional[float] = None
    price_change: Optional[float] = None
    price_change_percent: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    volume_24h: Optional[float] = None
    open_24h: Optional[float] = None


class TickerUpdate(NamedTuple):
    """Provider-neutral ticker payload produced by a parser."""
    price: float
    open_24h: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    volume_24h: Optional[float] = None
    # Only for providers that report change but no open price
    price_change: Optional[float] = None
    price_change_percent: Optional[float] = None


class PriceLevel(NamedTuple):
    """Single displayed price level of one side of the book."""
    price: float
    quantity: float
    total: float            # price * quantity
    cumulative: float       # Running quantity from top-of-book down to this level
    depth_percent: float    # cumulative / larger side total * 100


class Spread(NamedTuple):
    value: float      # best ask - best bid
    percent: float    # value / best ask * 100


class OrderBookState(NamedTuple):
    """
    Depth-limited order book view.

    bids are strictly descending by price, asks strictly ascending.
    """
    bids: list[PriceLevel]
    asks: list[PriceLevel]
    spread: Optional[Spread]

    @classmethod
    def empty(cls) -> OrderBookState:
        return cls(bids=[], asks=[], spread=None)


class BookMessageKind(str, Enum):
    SNAPSHOT = "snapshot"   # Clear and bulk-load both sides
    UPDATE = "update"       # Ordered batch of (side, price, qty) upserts
    REPLACE = "replace"     # Full-replacement book from a periodic push


class BookMessage(NamedTuple):
    """Provider-neutral order book message produced by a parser."""
    kind: BookMessageKind
    bids: list[tuple[float, float]] = []
    asks: list[tuple[float, float]] = []
    changes: list[tuple[str, float, float]] = []  # (side "buy"|"sell", price, qty)
