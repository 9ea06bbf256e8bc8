"""
Configuration for the feed synchronization layer.

All durations are milliseconds here; conversion to seconds happens where asyncio
is called.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

DEFAULT_DEPTH = 10
DEFAULT_POLL_INTERVAL_MS = 10_000
DEFAULT_BASE_BACKOFF_MS = 1_000
DEFAULT_CAP_BACKOFF_MS = 30_000
DEFAULT_CONNECT_TIMEOUT_MS = 5_000
DEFAULT_BOOK_MAX_RECONNECTS = 3


@dataclass(frozen=True)
class FeedConfig:
    """Settings shared by the price feed controller and order book synchronizer."""

    product_id: str = "ETH-USD"

    # Order book
    depth: int = DEFAULT_DEPTH
    book_provider: str = "coinbase"
    book_max_reconnect_attempts: Optional[int] = DEFAULT_BOOK_MAX_RECONNECTS

    # Price feed
    price_provider: str = "coinbase"
    poll_provider: str = "coingecko"
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    price_max_reconnect_attempts: Optional[int] = None  # None = retry forever

    # Reconnect behavior (both feeds)
    base_backoff_ms: int = DEFAULT_BASE_BACKOFF_MS
    cap_backoff_ms: int = DEFAULT_CAP_BACKOFF_MS
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS

    def __post_init__(self) -> None:
        if not self.product_id or "-" not in self.product_id:
            raise ConfigurationError(
                "product_id must look like BASE-QUOTE (e.g. ETH-USD)",
                field="product_id",
                value=self.product_id,
            )
        if self.depth <= 0:
            raise ConfigurationError("depth must be positive", field="depth", value=self.depth)
        for name in ("poll_interval_ms", "base_backoff_ms", "connect_timeout_ms"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive", field=name, value=value)
        if self.cap_backoff_ms < self.base_backoff_ms:
            raise ConfigurationError(
                "cap_backoff_ms must be >= base_backoff_ms",
                field="cap_backoff_ms",
                value=self.cap_backoff_ms,
            )
        for name in ("book_max_reconnect_attempts", "price_max_reconnect_attempts"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ConfigurationError(
                    f"{name} must be at least 1 (or None for unbounded)",
                    field=name,
                    value=value,
                )

    @property
    def base_asset(self) -> str:
        return self.product_id.split("-", 1)[0].upper()

    @property
    def quote_asset(self) -> str:
        return self.product_id.split("-", 1)[1].upper()
