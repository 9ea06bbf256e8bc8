#!/usr/bin/env python3
"""
Ticker Viewer - Live price and order book for one asset from unreliable exchange feeds.

Usage:
    python -m ticker_viewer.main --product ETH-USD --depth 10

    Or via the console script:
    ticker-viewer ETH-USD --book-provider binance

Controls:
    q - Quit
    r - Retry the order book after it went unavailable
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import (
    DEFAULT_BASE_BACKOFF_MS,
    DEFAULT_BOOK_MAX_RECONNECTS,
    DEFAULT_CAP_BACKOFF_MS,
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_DEPTH,
    DEFAULT_POLL_INTERVAL_MS,
    FeedConfig,
)
from .errors import ConfigurationError
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


async def run_headless(price_feed, order_book, interval_sec: float = 1.0) -> None:
    """Log the latest snapshots until cancelled (no TUI)."""
    while True:
        snap = price_feed.get_price_snapshot()
        book = order_book.get_order_book_state()
        best_bid = book.bids[0].price if book.bids else None
        best_ask = book.asks[0].price if book.asks else None
        spread = f"{book.spread.value:.2f}" if book.spread else "--"
        logger.info(
            f"price={snap.price} prev={snap.prev_price} change={snap.price_change} "
            f"[{price_feed.get_connectivity_status().value}] "
            f"bid={best_bid} ask={best_ask} spread={spread} "
            f"[{order_book.get_connectivity_status().value}]"
        )
        await asyncio.sleep(interval_sec)


async def main(config: FeedConfig, headless: bool = False) -> None:
    """Main entry point - runs both feeds and the UI concurrently."""

    # Import here to avoid slow startup for --help
    from .datafeed.book_sync import OrderBookSynchronizer
    from .datafeed.price_feed import PriceFeedController
    from .datafeed.providers import book_provider, poll_provider, ticker_provider
    from .datafeed.transport import AiohttpTransport

    primary = ticker_provider(config.price_provider, config.product_id)
    fallback = poll_provider(config.poll_provider, config.product_id)
    depth_source = book_provider(config.book_provider, config.product_id)

    logger.info(f"Starting Ticker Viewer for {config.product_id}")
    logger.info(f"  Price: {primary.name} (push) + {fallback.name} (poll)")
    logger.info(f"  Book:  {depth_source.name}, depth {config.depth}")

    transport = AiohttpTransport()
    price_feed = PriceFeedController(transport, primary, fallback, config)
    order_book = OrderBookSynchronizer(transport, depth_source, config)

    price_feed.start()
    order_book.start()

    try:
        if headless:
            await run_headless(price_feed, order_book)
        else:
            from .ui.ticker_view import run_ui
            await run_ui(price_feed, order_book)
    finally:
        # Cleanup on every exit path
        await order_book.stop()
        await price_feed.stop()
        await transport.close()


def _attempts(value: str) -> Optional[int]:
    """'0' or 'none' means unbounded."""
    if value.lower() in ("none", "0", "inf"):
        return None
    return int(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ticker Viewer - live price and order book from unreliable exchange feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m ticker_viewer.main ETH-USD
    python -m ticker_viewer.main BTC-USD --depth 15 --book-provider binance
    python -m ticker_viewer.main ETH-USD --headless --log-level DEBUG
        """
    )

    parser.add_argument(
        "product",
        nargs="?",
        default="ETH-USD",
        help="Product id (default: ETH-USD)"
    )
    parser.add_argument(
        "--price-provider",
        default="coinbase",
        help="Push ticker provider: coinbase | binance (default: coinbase)"
    )
    parser.add_argument(
        "--poll-provider",
        default="coingecko",
        help="Fallback REST provider (default: coingecko)"
    )
    parser.add_argument(
        "--book-provider",
        default="coinbase",
        help="Order book provider: coinbase | binance (default: coinbase)"
    )
    parser.add_argument(
        "--depth",
        type=int,
        default=DEFAULT_DEPTH,
        help=f"Order book levels per side (default: {DEFAULT_DEPTH})"
    )
    parser.add_argument(
        "--poll-interval",
        type=int,
        default=DEFAULT_POLL_INTERVAL_MS,
        help=f"Fallback poll interval in ms (default: {DEFAULT_POLL_INTERVAL_MS})"
    )
    parser.add_argument(
        "--base-backoff",
        type=int,
        default=DEFAULT_BASE_BACKOFF_MS,
        help=f"First reconnect delay in ms (default: {DEFAULT_BASE_BACKOFF_MS})"
    )
    parser.add_argument(
        "--cap-backoff",
        type=int,
        default=DEFAULT_CAP_BACKOFF_MS,
        help=f"Maximum reconnect delay in ms (default: {DEFAULT_CAP_BACKOFF_MS})"
    )
    parser.add_argument(
        "--connect-timeout",
        type=int,
        default=DEFAULT_CONNECT_TIMEOUT_MS,
        help=f"Websocket connect timeout in ms (default: {DEFAULT_CONNECT_TIMEOUT_MS})"
    )
    parser.add_argument(
        "--max-reconnects",
        type=_attempts,
        default=DEFAULT_BOOK_MAX_RECONNECTS,
        help=f"Order book reconnect budget, 0 = unbounded (default: {DEFAULT_BOOK_MAX_RECONNECTS})"
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Log snapshots instead of starting the TUI"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="DEBUG, INFO, WARNING, ERROR (default: $TICKER_VIEWER_LOG_LEVEL or INFO)"
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Rotating log file (default: ticker_viewer.log when the TUI is running)"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> FeedConfig:
    return FeedConfig(
        product_id=args.product.upper(),
        depth=args.depth,
        book_provider=args.book_provider,
        book_max_reconnect_attempts=args.max_reconnects,
        price_provider=args.price_provider,
        poll_provider=args.poll_provider,
        poll_interval_ms=args.poll_interval,
        base_backoff_ms=args.base_backoff,
        cap_backoff_ms=args.cap_backoff,
        connect_timeout_ms=args.connect_timeout,
    )


def cli() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()

    # The TUI owns the terminal, so logs go to a file unless running headless
    log_file = args.log_file or (None if args.headless else "ticker_viewer.log")
    setup_logging(level=args.log_level, log_file=log_file, console=args.headless)

    try:
        config = config_from_args(args)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        asyncio.run(main(config, headless=args.headless))
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
