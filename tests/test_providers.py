"""
Tests for the per-exchange parsers and the provider registry.
"""

import orjson
import pytest

from ticker_viewer.datafeed.providers import (
    BinancePartialDepth,
    BinanceTicker,
    CoinbaseLevel2,
    CoinbaseTicker,
    CoinGeckoSummary,
    book_provider,
    poll_provider,
    ticker_provider,
)
from ticker_viewer.errors import ConfigurationError, ParseError
from ticker_viewer.types import BookMessageKind


def dumps(msg) -> str:
    return orjson.dumps(msg).decode()


class TestCoinbaseTicker:
    def test_subscribe_payload(self):
        payload = orjson.loads(CoinbaseTicker("eth-usd").subscribe_payload())
        assert payload == {"type": "subscribe", "product_ids": ["ETH-USD"], "channels": ["ticker"]}

    def test_parse_ticker(self, messages):
        update = CoinbaseTicker("ETH-USD").parse(dumps(messages.ticker(1800.25)))
        assert update.price == 1800.25
        assert update.open_24h == 1750.0
        assert update.low_24h == 1740.0
        assert update.volume_24h == 123456.78

    def test_ignores_other_messages(self, messages):
        provider = CoinbaseTicker("ETH-USD")
        assert provider.parse(dumps({"type": "subscriptions", "channels": []})) is None
        assert provider.parse(dumps(messages.ticker(1.0, product_id="BTC-USD"))) is None

    @pytest.mark.parametrize("raw", ["{oops", "[1, 2]", dumps({"type": "ticker", "product_id": "ETH-USD"})])
    def test_malformed_raises(self, raw):
        with pytest.raises(ParseError):
            CoinbaseTicker("ETH-USD").parse(raw)


class TestBinanceTicker:
    def test_url_and_symbol(self):
        provider = BinanceTicker("BTC-USD")
        assert provider.url == "wss://stream.binance.com:9443/ws/btcusdt@ticker"
        assert provider.subscribe_payload() is None

    def test_parse(self):
        msg = {"e": "24hrTicker", "s": "BTCUSDT", "c": "65000.1", "o": "64000",
               "h": "65500", "l": "63800", "v": "1234.5"}
        update = BinanceTicker("BTC-USD").parse(dumps(msg))
        assert update.price == 65000.1
        assert update.open_24h == 64000.0
        assert update.volume_24h == 1234.5

    def test_ignores_other_events(self):
        assert BinanceTicker("BTC-USD").parse(dumps({"e": "trade", "s": "BTCUSDT"})) is None


class TestCoinGeckoSummary:
    def test_url_uses_coin_slug(self):
        assert "/coins/bitcoin?" in CoinGeckoSummary("BTC-USD").url
        assert "/coins/pepe?" in CoinGeckoSummary("PEPE-USD").url
        assert "/coins/my-coin?" in CoinGeckoSummary("XYZ-USD", coin_id="my-coin").url

    def test_parse_derives_open(self, messages):
        update = CoinGeckoSummary("ETH-USD").parse(messages.summary(1800.0, change=50.0))
        assert update.price == 1800.0
        assert update.open_24h == 1750.0
        assert update.price_change == 50.0
        assert update.high_24h == 1850.0
        assert update.volume_24h == 9_876_543_210.0

    def test_missing_change_leaves_open_unknown(self):
        doc = {"market_data": {"current_price": {"usd": 10.0}}}
        update = CoinGeckoSummary("ETH-USD").parse(doc)
        assert update.open_24h is None
        assert update.high_24h is None

    @pytest.mark.parametrize("doc", [None, {}, {"market_data": {"current_price": {"eur": 1.0}}}])
    def test_malformed_raises(self, doc):
        with pytest.raises(ParseError):
            CoinGeckoSummary("ETH-USD").parse(doc)


class TestCoinbaseLevel2:
    def test_snapshot(self, messages):
        msg = CoinbaseLevel2("ETH-USD").parse(dumps(messages.snapshot([(100, 2)], [(101, 1.5)])))
        assert msg.kind == BookMessageKind.SNAPSHOT
        assert msg.bids == [(100.0, 2.0)]
        assert msg.asks == [(101.0, 1.5)]

    def test_update(self, messages):
        msg = CoinbaseLevel2("ETH-USD").parse(dumps(messages.l2update([("buy", 100, 0), ("sell", 102, 3)])))
        assert msg.kind == BookMessageKind.UPDATE
        assert msg.changes == [("buy", 100.0, 0.0), ("sell", 102.0, 3.0)]

    def test_ignores_heartbeats_and_other_products(self, messages):
        provider = CoinbaseLevel2("ETH-USD")
        assert provider.parse(dumps({"type": "heartbeat", "product_id": "ETH-USD"})) is None
        assert provider.parse(dumps(messages.snapshot([(1, 1)], [], product_id="BTC-USD"))) is None

    @pytest.mark.parametrize("changes", [
        [["hold", "1", "1"]],
        [["buy", "1"]],
        [["buy", "abc", "1"]],
        "not-a-list",
    ])
    def test_malformed_update_raises(self, changes):
        raw = dumps({"type": "l2update", "product_id": "ETH-USD", "changes": changes})
        with pytest.raises(ParseError):
            CoinbaseLevel2("ETH-USD").parse(raw)


class TestBinancePartialDepth:
    def test_replace(self):
        raw = dumps({"lastUpdateId": 7, "bids": [["100.5", "2"]], "asks": [["101", "1"], ["102", "0"]]})
        msg = BinancePartialDepth("ETH-USD").parse(raw)
        assert msg.kind == BookMessageKind.REPLACE
        assert msg.bids == [(100.5, 2.0)]
        assert msg.asks == [(101.0, 1.0), (102.0, 0.0)]

    def test_ignores_non_book_messages(self):
        assert BinancePartialDepth("ETH-USD").parse(dumps({"result": None, "id": 1})) is None

    def test_malformed_level_raises(self):
        with pytest.raises(ParseError):
            BinancePartialDepth("ETH-USD").parse(dumps({"bids": [["100"]], "asks": []}))


class TestRegistry:
    def test_factories(self):
        assert isinstance(ticker_provider("coinbase", "ETH-USD"), CoinbaseTicker)
        assert isinstance(ticker_provider("Binance", "ETH-USD"), BinanceTicker)
        assert isinstance(poll_provider("coingecko", "ETH-USD"), CoinGeckoSummary)
        assert isinstance(book_provider("binance", "ETH-USD"), BinancePartialDepth)

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError) as exc_info:
            book_provider("kraken", "ETH-USD")
        assert exc_info.value.field == "book_provider"
        assert "coinbase" in str(exc_info.value)
