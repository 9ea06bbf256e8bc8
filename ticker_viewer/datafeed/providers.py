"""
Per-exchange provider variants.

Each provider supplies only what differs between exchanges:
- url: websocket or REST endpoint
- subscribe_payload(): application-level subscribe message (None if not needed)
- parse(): raw message -> provider-neutral TickerUpdate / BookMessage

parse() returns None for messages that are valid but irrelevant (subscription
acks, heartbeats, other products) and raises ParseError for malformed ones.

Wire formats:
- Coinbase ticker:   {type: "ticker", product_id, price, open_24h, high_24h, low_24h, volume_24h}
- Binance ticker:    {e: "24hrTicker", s, c, o, h, l, v}
- CoinGecko summary: {market_data: {current_price: {usd}, price_change_24h, ...}}
- Coinbase level2:   {type: "snapshot", bids, asks} then {type: "l2update", changes: [[side, price, size]]}
- Binance depth20:   {lastUpdateId, bids: [[price, qty]], asks: [[price, qty]]}
"""

from __future__ import annotations

from typing import Any, Optional, Union

import orjson

from ..errors import ConfigurationError, ParseError
from ..types import BookMessage, BookMessageKind, TickerUpdate

COINBASE_WS = "wss://ws-feed.exchange.coinbase.com"
BINANCE_WS = "wss://stream.binance.com:9443/ws"
COINGECKO_REST = "https://api.coingecko.com/api/v3"

# CoinGecko identifies coins by slug, not ticker
COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "LTC": "litecoin",
    "DOGE": "dogecoin",
}


def _loads(raw: Union[str, bytes], component: str) -> dict:
    try:
        msg = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ParseError(f"invalid JSON: {e}", raw=raw, component=component) from e
    if not isinstance(msg, dict):
        raise ParseError("expected a JSON object", raw=raw, component=component)
    return msg


def _safe_float(value: Any, field: str, component: str) -> float:
    """Convert a required numeric field (exchanges send strings)."""
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ParseError(
            f"field '{field}' is not numeric: {value!r}",
            component=component,
            details={"field": field},
        ) from e


def _optional_float(value: Any, field: str, component: str) -> Optional[float]:
    if value is None:
        return None
    return _safe_float(value, field, component)


def _parse_levels(levels: Any, field: str, component: str) -> list[tuple[float, float]]:
    """[[price, qty, ...], ...] -> [(price, qty), ...]"""
    if not isinstance(levels, list):
        raise ParseError(f"field '{field}' must be a list", component=component)

    result: list[tuple[float, float]] = []
    for level in levels:
        if not isinstance(level, (list, tuple)) or len(level) < 2:
            raise ParseError(f"malformed level in '{field}': {level!r}", component=component)
        result.append((
            _safe_float(level[0], f"{field}.price", component),
            _safe_float(level[1], f"{field}.qty", component),
        ))
    return result


def _binance_symbol(product_id: str) -> str:
    """ETH-USD -> ethusdt (Binance spot quotes in USDT)."""
    base, quote = product_id.upper().split("-", 1)
    if quote == "USD":
        quote = "USDT"
    return f"{base}{quote}".lower()


class CoinbaseTicker:
    """Coinbase Exchange ticker channel. Works from the US, no API key."""

    name = "coinbase"

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id.upper()
        self.url = COINBASE_WS

    def subscribe_payload(self) -> Optional[str]:
        return orjson.dumps({
            "type": "subscribe",
            "product_ids": [self.product_id],
            "channels": ["ticker"],
        }).decode()

    def parse(self, raw: Union[str, bytes]) -> Optional[TickerUpdate]:
        msg = _loads(raw, self.name)
        if msg.get("type") != "ticker" or msg.get("product_id") != self.product_id:
            return None

        return TickerUpdate(
            price=_safe_float(msg.get("price"), "price", self.name),
            open_24h=_optional_float(msg.get("open_24h"), "open_24h", self.name),
            high_24h=_optional_float(msg.get("high_24h"), "high_24h", self.name),
            low_24h=_optional_float(msg.get("low_24h"), "low_24h", self.name),
            volume_24h=_optional_float(msg.get("volume_24h"), "volume_24h", self.name),
        )


class BinanceTicker:
    """Binance spot 24hr rolling ticker stream (geo-blocked in some regions)."""

    name = "binance"

    def __init__(self, product_id: str) -> None:
        self.symbol = _binance_symbol(product_id)
        self.url = f"{BINANCE_WS}/{self.symbol}@ticker"

    def subscribe_payload(self) -> Optional[str]:
        # Stream is selected by URL
        return None

    def parse(self, raw: Union[str, bytes]) -> Optional[TickerUpdate]:
        msg = _loads(raw, self.name)
        if msg.get("e") != "24hrTicker" or str(msg.get("s", "")).lower() != self.symbol:
            return None

        return TickerUpdate(
            price=_safe_float(msg.get("c"), "c", self.name),
            open_24h=_optional_float(msg.get("o"), "o", self.name),
            high_24h=_optional_float(msg.get("h"), "h", self.name),
            low_24h=_optional_float(msg.get("l"), "l", self.name),
            volume_24h=_optional_float(msg.get("v"), "v", self.name),
        )


class CoinGeckoSummary:
    """CoinGecko coin summary over REST. Slow (poll every ~10s) but reachable everywhere."""

    name = "coingecko"

    def __init__(self, product_id: str, coin_id: Optional[str] = None) -> None:
        base, quote = product_id.upper().split("-", 1)
        self.coin_id = coin_id or COINGECKO_IDS.get(base, base.lower())
        self.vs_currency = quote.lower()
        self.url = (
            f"{COINGECKO_REST}/coins/{self.coin_id}"
            "?localization=false&tickers=false&community_data=false"
            "&developer_data=false&sparkline=false"
        )

    def parse(self, doc: Any) -> TickerUpdate:
        if not isinstance(doc, dict) or not isinstance(doc.get("market_data"), dict):
            raise ParseError("missing 'market_data'", raw=doc, component=self.name)

        market = doc["market_data"]
        vs = self.vs_currency

        def per_currency(field: str) -> Any:
            values = market.get(field)
            if not isinstance(values, dict):
                return None
            return values.get(vs)

        price = _safe_float(per_currency("current_price"), "current_price", self.name)
        change = _optional_float(market.get("price_change_24h"), "price_change_24h", self.name)
        change_pct = _optional_float(
            market.get("price_change_percentage_24h"), "price_change_percentage_24h", self.name
        )

        return TickerUpdate(
            price=price,
            # Summary has no open price; recover it from the absolute change
            open_24h=price - change if change is not None else None,
            high_24h=_optional_float(per_currency("high_24h"), "high_24h", self.name),
            low_24h=_optional_float(per_currency("low_24h"), "low_24h", self.name),
            volume_24h=_optional_float(per_currency("total_volume"), "total_volume", self.name),
            price_change=change,
            price_change_percent=change_pct,
        )


class CoinbaseLevel2:
    """
    Coinbase level2_batch channel: incremental model.

    One snapshot per subscription, then batched l2update deltas where size 0
    removes the level.
    """

    name = "coinbase"
    incremental = True

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id.upper()
        self.url = COINBASE_WS

    def subscribe_payload(self) -> Optional[str]:
        return orjson.dumps({
            "type": "subscribe",
            "product_ids": [self.product_id],
            "channels": ["level2_batch"],
        }).decode()

    def parse(self, raw: Union[str, bytes]) -> Optional[BookMessage]:
        msg = _loads(raw, self.name)
        msg_type = msg.get("type")
        if msg.get("product_id") != self.product_id:
            return None

        if msg_type == "snapshot":
            return BookMessage(
                kind=BookMessageKind.SNAPSHOT,
                bids=_parse_levels(msg.get("bids"), "bids", self.name),
                asks=_parse_levels(msg.get("asks"), "asks", self.name),
            )

        if msg_type in ("l2update", "update"):
            changes = msg.get("changes")
            if not isinstance(changes, list):
                raise ParseError("field 'changes' must be a list", component=self.name)

            parsed: list[tuple[str, float, float]] = []
            for change in changes:
                if not isinstance(change, (list, tuple)) or len(change) < 3:
                    raise ParseError(f"malformed change: {change!r}", component=self.name)
                side = change[0]
                if side not in ("buy", "sell"):
                    raise ParseError(f"unknown side: {side!r}", component=self.name)
                parsed.append((
                    side,
                    _safe_float(change[1], "changes.price", self.name),
                    _safe_float(change[2], "changes.size", self.name),
                ))
            return BookMessage(kind=BookMessageKind.UPDATE, changes=parsed)

        return None


class BinancePartialDepth:
    """Binance top-20 partial depth stream: full-replacement model, pushed every 100ms."""

    name = "binance"
    incremental = False

    def __init__(self, product_id: str, levels: int = 20) -> None:
        self.symbol = _binance_symbol(product_id)
        self.url = f"{BINANCE_WS}/{self.symbol}@depth{levels}@100ms"

    def subscribe_payload(self) -> Optional[str]:
        return None

    def parse(self, raw: Union[str, bytes]) -> Optional[BookMessage]:
        msg = _loads(raw, self.name)
        if "bids" not in msg and "asks" not in msg:
            return None

        return BookMessage(
            kind=BookMessageKind.REPLACE,
            bids=_parse_levels(msg.get("bids"), "bids", self.name),
            asks=_parse_levels(msg.get("asks"), "asks", self.name),
        )


TickerProvider = Union[CoinbaseTicker, BinanceTicker]
BookProvider = Union[CoinbaseLevel2, BinancePartialDepth]

TICKER_PROVIDERS = {
    "coinbase": CoinbaseTicker,
    "binance": BinanceTicker,
}
POLL_PROVIDERS = {
    "coingecko": CoinGeckoSummary,
}
BOOK_PROVIDERS = {
    "coinbase": CoinbaseLevel2,
    "binance": BinancePartialDepth,
}


def _lookup(registry: dict, kind: str, name: str, product_id: str):
    try:
        factory = registry[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"unknown {kind} provider '{name}' (choose from {', '.join(sorted(registry))})",
            field=f"{kind}_provider",
            value=name,
        ) from None
    return factory(product_id)


def ticker_provider(name: str, product_id: str) -> TickerProvider:
    return _lookup(TICKER_PROVIDERS, "price", name, product_id)


def poll_provider(name: str, product_id: str) -> CoinGeckoSummary:
    return _lookup(POLL_PROVIDERS, "poll", name, product_id)


def book_provider(name: str, product_id: str) -> BookProvider:
    return _lookup(BOOK_PROVIDERS, "book", name, product_id)
