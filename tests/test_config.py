"""
Tests for FeedConfig validation and the error types.
"""

import pytest

from ticker_viewer.config import FeedConfig
from ticker_viewer.errors import ConfigurationError, ParseError, TransportError


class TestFeedConfig:
    def test_defaults(self):
        config = FeedConfig()
        assert config.product_id == "ETH-USD"
        assert config.depth == 10
        assert config.poll_interval_ms == 10_000
        assert config.base_backoff_ms == 1_000
        assert config.cap_backoff_ms == 30_000
        assert config.connect_timeout_ms == 5_000
        assert config.book_max_reconnect_attempts == 3
        assert config.price_max_reconnect_attempts is None

    def test_assets(self):
        config = FeedConfig(product_id="btc-eur")
        assert config.base_asset == "BTC"
        assert config.quote_asset == "EUR"

    @pytest.mark.parametrize("overrides, field", [
        ({"product_id": "ETHUSD"}, "product_id"),
        ({"depth": 0}, "depth"),
        ({"poll_interval_ms": 0}, "poll_interval_ms"),
        ({"base_backoff_ms": -1}, "base_backoff_ms"),
        ({"connect_timeout_ms": 0}, "connect_timeout_ms"),
        ({"base_backoff_ms": 5000, "cap_backoff_ms": 1000}, "cap_backoff_ms"),
        ({"book_max_reconnect_attempts": 0}, "book_max_reconnect_attempts"),
        ({"price_max_reconnect_attempts": 0}, "price_max_reconnect_attempts"),
    ])
    def test_invalid(self, overrides, field):
        with pytest.raises(ConfigurationError) as exc_info:
            FeedConfig(**overrides)
        assert exc_info.value.field == field
        assert exc_info.value.component == "config"

    def test_unbounded_book_budget_allowed(self):
        assert FeedConfig(book_max_reconnect_attempts=None).book_max_reconnect_attempts is None


class TestErrors:
    def test_str_includes_component_and_details(self):
        err = TransportError("refused", url="wss://x", component="order-book")
        text = str(err)
        assert text.startswith("refused")
        assert "component=order-book" in text
        assert "wss://x" in text

    def test_parse_error_keeps_raw(self):
        err = ParseError("bad", raw="{oops")
        assert err.raw == "{oops"
        assert str(err) == "bad"
