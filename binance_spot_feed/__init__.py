"""
Binance Spot Public Market-Data Connector
=========================================

Streaming connector that keeps a websocket session to Binance spot open,
subscribes to the mini-ticker, trade and partial-depth channels of one
trading pair, and delivers canonical Trade / Ticker / TopOfBook events to a
single consumer callback.

Project Structure:
- binance_spot_feed/data_ingestion: rate limiting, wire codec, normalization,
  connection lifecycle and the public connector facade
- binance_spot_feed/utils: configuration and logging
"""

__version__ = "1.0.0"
__author__ = "Market Data Team"
__license__ = "Private"

from binance_spot_feed.data_ingestion.binance_connector import BinanceSpotPublicConnector
from binance_spot_feed.data_ingestion.events import Ticker, TopOfBook, Trade

__all__ = [
    "BinanceSpotPublicConnector",
    "Ticker",
    "TopOfBook",
    "Trade",
]
