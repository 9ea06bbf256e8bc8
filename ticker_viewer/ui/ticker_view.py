"""
Ticker TUI using Textual.

Displays:
- Top: Price header (last price with up/down colouring, 24h change, high/low/volume, status)
- Middle: Order book ladder (asks above the spread row, bids below, depth bars)

Consumption is pull-based: a timer reads the controllers' latest snapshots,
the UI never drives the feeds.

Performance notes:
- Refreshes at ~10 FPS
- Widgets only repaint when the snapshot object changed
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from rich.console import RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Static

from ..types import ConnectivityStatus, OrderBookState, PriceLevel, PriceSnapshot

if TYPE_CHECKING:
    from ..datafeed.book_sync import OrderBookSynchronizer
    from ..datafeed.price_feed import PriceFeedController

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
PRICE_COLOR = "#f8fafc"
HEADER_COLOR = "#94a3b8"
BAR_BG = "#1e293b"

STATUS_LABELS = {
    ConnectivityStatus.LIVE: ("● Live", BID_COLOR),
    ConnectivityStatus.CONNECTED: ("● Connected", BID_COLOR),
    ConnectivityStatus.CONNECTING: ("○ Connecting...", "yellow"),
    ConnectivityStatus.ERROR: ("○ Error", ASK_COLOR),
    ConnectivityStatus.UNAVAILABLE: ("○ Unavailable", HEADER_COLOR),
}

BAR_WIDTH = 14


def format_price(price: Optional[float]) -> str:
    if price is None:
        return "--"
    return f"{price:,.2f}"


def format_qty(qty: float) -> str:
    """Format quantity for display."""
    if qty >= 1000:
        return f"{qty/1000:.1f}K"
    elif qty >= 1:
        return f"{qty:.3f}"
    else:
        return f"{qty:.4f}"


def format_volume(volume: Optional[float]) -> str:
    if volume is None:
        return "--"
    if volume >= 1e9:
        return f"{volume/1e9:.2f}B"
    if volume >= 1e6:
        return f"{volume/1e6:.2f}M"
    if volume >= 1e3:
        return f"{volume/1e3:.2f}K"
    return f"{volume:.2f}"


def make_bar(percent: float, width: int, color: str) -> Text:
    """Horizontal depth bar using block characters; percent is 0-100."""
    fill_width = int(max(0.0, min(100.0, percent)) / 100.0 * width)
    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


def status_text(status: ConnectivityStatus) -> Text:
    label, color = STATUS_LABELS[status]
    return Text(label, style=color)


def render_price_header(snap: PriceSnapshot, status: ConnectivityStatus, product_id: str) -> Text:
    """One-line price header."""
    if snap.price is None:
        return Text.assemble(Text(f" {product_id} ", style="bold white on #1e40af"), "  ",
                             status_text(status), Text("  Waiting for price...", style="dim"))

    if snap.prev_price is None or snap.price == snap.prev_price:
        price_style = PRICE_COLOR
    elif snap.price > snap.prev_price:
        price_style = BID_COLOR
    else:
        price_style = ASK_COLOR

    change = snap.price_change
    change_style = BID_COLOR if (change or 0) >= 0 else ASK_COLOR
    if change is None:
        change_text = Text("--", style="dim")
    else:
        pct = snap.price_change_percent
        pct_text = f" ({pct:+.2f}%)" if pct is not None else ""
        change_text = Text(f"{change:+,.2f}{pct_text}", style=change_style)

    return Text.assemble(
        Text(f" {product_id} ", style="bold white on #1e40af"),
        "  ",
        Text(format_price(snap.price), style=f"bold {price_style}"),
        "  ",
        change_text,
        Text("  H: ", style="dim"), format_price(snap.high_24h),
        Text("  L: ", style="dim"), format_price(snap.low_24h),
        Text("  Vol: ", style="dim"), format_volume(snap.volume_24h),
        "  ",
        status_text(status),
    )


def _level_row(level: PriceLevel, color: str) -> tuple[Text, Text, Text, Text]:
    return (
        Text(format_price(level.price), style=color),
        Text(format_qty(level.quantity)),
        Text(format_volume(level.total), style="dim"),
        make_bar(level.depth_percent, BAR_WIDTH, color),
    )


def render_order_book(state: OrderBookState, status: ConnectivityStatus) -> RenderableType:
    """Render the depth ladder as a Rich Table."""
    if status == ConnectivityStatus.UNAVAILABLE:
        return Text(
            "Order book unavailable\nReal-time depth is blocked or unreachable (press r to retry)",
            style="dim",
        )
    if not state.bids and not state.asks:
        return Text("Loading...", style="dim")

    table = Table(
        show_header=True,
        header_style=HEADER_COLOR,
        box=None,
        padding=(0, 1),
        collapse_padding=True,
    )
    table.add_column("Price", justify="right", width=12)
    table.add_column("Amount", justify="right", width=10)
    table.add_column("Total", justify="right", width=10)
    table.add_column("Depth", justify="left", width=BAR_WIDTH, no_wrap=True)

    # Best ask sits just above the spread row
    for level in reversed(state.asks):
        table.add_row(*_level_row(level, ASK_COLOR))

    if state.spread is not None:
        table.add_row(
            Text("Spread", style="dim"),
            Text(format_price(state.spread.value), style="yellow"),
            Text(f"{state.spread.percent:.3f}%", style="yellow"),
            Text(""),
        )
    else:
        table.add_row(Text("Spread", style="dim"), Text("--"), Text(""), Text(""))

    for level in state.bids:
        table.add_row(*_level_row(level, BID_COLOR))

    return table


class PriceHeader(Static):
    """Last price with 24h statistics."""

    DEFAULT_CSS = """
    PriceHeader {
        dock: top;
        height: 3;
        padding: 1 2;
        background: #0f172a;
    }
    """

    def __init__(self, product_id: str) -> None:
        super().__init__()
        self.product_id = product_id
        self._snapshot = PriceSnapshot()
        self._status = ConnectivityStatus.CONNECTING

    def update_snapshot(self, snapshot: PriceSnapshot, status: ConnectivityStatus) -> None:
        if snapshot is self._snapshot and status == self._status:
            return
        self._snapshot = snapshot
        self._status = status
        self.refresh()

    def render(self) -> RenderableType:
        return render_price_header(self._snapshot, self._status, self.product_id)


class OrderBookTable(Static):
    """Order book ladder widget."""

    DEFAULT_CSS = """
    OrderBookTable {
        width: 100%;
        height: 100%;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._state = OrderBookState.empty()
        self._status = ConnectivityStatus.CONNECTING

    def update_state(self, state: OrderBookState, status: ConnectivityStatus) -> None:
        if state is self._state and status == self._status:
            return
        self._state = state
        self._status = status
        self.refresh()

    def render(self) -> RenderableType:
        return render_order_book(self._state, self._status)


class TickerApp(App):
    """Main Ticker Viewer application."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "restart_book", "Retry Order Book"),
    ]

    def __init__(
        self,
        price_feed: PriceFeedController,
        order_book: OrderBookSynchronizer,
        refresh_interval_sec: float = 0.1,
    ) -> None:
        super().__init__()
        self.price_feed = price_feed
        self.order_book = order_book
        self.refresh_interval_sec = refresh_interval_sec
        self._header: Optional[PriceHeader] = None
        self._book_table: Optional[OrderBookTable] = None

    def compose(self) -> ComposeResult:
        self._header = PriceHeader(self.price_feed.config.product_id)
        self._book_table = OrderBookTable()

        yield self._header
        yield Container(self._book_table, id="main-container")
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"Ticker Viewer - {self.price_feed.config.product_id}"
        self.set_interval(self.refresh_interval_sec, self._pull_snapshots)

    def _pull_snapshots(self) -> None:
        if self._header:
            self._header.update_snapshot(
                self.price_feed.get_price_snapshot(),
                self.price_feed.get_connectivity_status(),
            )
        if self._book_table:
            self._book_table.update_state(
                self.order_book.get_order_book_state(),
                self.order_book.get_connectivity_status(),
            )

    async def action_restart_book(self) -> None:
        """Explicit reset after the order book went unavailable (bound to 'r')."""
        await self.order_book.restart()


async def run_ui(price_feed: PriceFeedController, order_book: OrderBookSynchronizer) -> None:
    """Run the TUI application."""
    app = TickerApp(price_feed, order_book)
    await app.run_async()
