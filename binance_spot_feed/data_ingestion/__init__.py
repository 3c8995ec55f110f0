"""
Data Ingestion Module for the Spot Connector
============================================

Binance spot market data ingestion with:
- Rate-limited websocket connectivity and automatic reconnection
- Structural classification of untagged wire frames
- Normalization into canonical Trade / Ticker / TopOfBook events
"""

from .events import EventKind, Side, Ticker, TopOfBook, Trade
from .rate_limiter import RateLimiter
from .normalizer import Normalizer, SubscriptionTarget
from .connection_manager import ConnectionManager, ConnectionState, ReconnectPolicy
from .binance_connector import BinanceSpotPublicConnector

__all__ = [
    'EventKind',
    'Side',
    'Ticker',
    'TopOfBook',
    'Trade',
    'RateLimiter',
    'Normalizer',
    'SubscriptionTarget',
    'ConnectionManager',
    'ConnectionState',
    'ReconnectPolicy',
    'BinanceSpotPublicConnector',
]
