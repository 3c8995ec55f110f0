"""
Canonical Market Data Events
============================

Exchange-independent records handed to the consumer callback. Every event
carries the canonical symbol, the connector tag, its kind and an epoch
timestamp in microseconds (0 when the exchange sends none).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Union


CONNECTOR_TYPE = "Binance"


class EventKind(str, Enum):
    """Canonical event kinds"""
    TRADE = "Trade"
    TICKER = "Ticker"
    TOP_OF_BOOK = "TopOfBook"


class Side(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


@dataclass(frozen=True)
class Trade:
    """Single executed trade"""
    symbol: str
    price: float
    size: float
    side: Side
    timestamp: int
    connector_type: str = CONNECTOR_TYPE
    event: EventKind = field(default=EventKind.TRADE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'connectorType': self.connector_type,
            'event': self.event.value,
            'price': self.price,
            'size': self.size,
            'side': self.side.value,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class Ticker:
    """Last traded price from the rolling mini-ticker"""
    symbol: str
    last_price: float
    timestamp: int
    connector_type: str = CONNECTOR_TYPE
    event: EventKind = field(default=EventKind.TICKER, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'connectorType': self.connector_type,
            'event': self.event.value,
            'lastPrice': self.last_price,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class TopOfBook:
    """Best bid and ask with their sizes"""
    symbol: str
    bid_price: float
    bid_size: float
    ask_price: float
    ask_size: float
    timestamp: int
    connector_type: str = CONNECTOR_TYPE
    event: EventKind = field(default=EventKind.TOP_OF_BOOK, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'connectorType': self.connector_type,
            'event': self.event.value,
            'bidPrice': self.bid_price,
            'bidSize': self.bid_size,
            'askPrice': self.ask_price,
            'askSize': self.ask_size,
            'timestamp': self.timestamp,
        }


CanonicalEvent = Union[Trade, Ticker, TopOfBook]
