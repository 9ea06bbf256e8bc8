"""
Ticker Viewer - Live single-asset price and order book view fed by unreliable exchanges.

Architecture:
- datafeed/: Transports, reconnect supervisor, price feed and order book synchronization
- engine/: Pure derived-view computations (depth ladder, spread)
- ui/: Price header + order book ladder (Textual TUI)
"""

__version__ = "0.1.0"
