"""
Binance Spot Wire Codec
=======================

Decodes raw websocket frames and classifies them by shape. The partial-depth
stream carries no event-type field, so classification is structural and runs
through an ordered list of predicates: a depth frame must never be read as a
ticker or trade even when they share field names.

Typed exchange-native records are pydantic models keyed by the wire field
names; numeric wire strings validate as finite, non-negative floats.
"""

import json
from typing import Annotated, Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from .events import EventKind
from .exceptions import FrameDecodeError


TRADE_EVENT = "trade"
MINI_TICKER_EVENT = "24hrMiniTicker"

# Channels subscribed for every target: mini-ticker, trades, top 5 book levels
CHANNELS: Tuple[str, ...] = ("miniTicker", "trade", "depth5")

# A frame without any of these is a control/ack frame, never market data
PRICE_FIELDS = ("c", "p", "bids", "asks")

WirePrice = Annotated[float, Field(ge=0, allow_inf_nan=False)]


class BinanceTradeEvent(BaseModel):
    """``<symbol>@trade`` payload"""
    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="e")
    event_time: int = Field(default=0, alias="E")
    symbol: str = Field(default="", alias="s")
    trade_id: int = Field(default=0, alias="t")
    price: WirePrice = Field(alias="p")
    quantity: WirePrice = Field(alias="q")
    trade_time: int = Field(alias="T")
    buyer_is_maker: Any = Field(alias="m")


class BinanceMiniTicker(BaseModel):
    """``<symbol>@miniTicker`` payload"""
    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(alias="e")
    event_time: int = Field(alias="E")
    symbol: str = Field(default="", alias="s")
    close_price: WirePrice = Field(alias="c")
    open_price: Optional[str] = Field(default=None, alias="o")
    high_price: Optional[str] = Field(default=None, alias="h")
    low_price: Optional[str] = Field(default=None, alias="l")
    base_volume: Optional[str] = Field(default=None, alias="v")
    quote_volume: Optional[str] = Field(default=None, alias="q")


class BinanceMarketDepth(BaseModel):
    """``<symbol>@depth5`` payload; levels are ``[price, quantity]`` string pairs"""
    last_update_id: int = Field(default=0, alias="lastUpdateId")
    bids: List[Tuple[WirePrice, WirePrice]]
    asks: List[Tuple[WirePrice, WirePrice]]

    def best_bid(self) -> Tuple[float, float]:
        return self.bids[0]

    def best_ask(self) -> Tuple[float, float]:
        return self.asks[0]


def decode(frame: Union[str, bytes]) -> Dict[str, Any]:
    """Parse one transport frame into a JSON object"""
    try:
        data = json.loads(frame)
    except (TypeError, ValueError, RecursionError) as e:
        raise FrameDecodeError(f"Failed to parse frame: {e}", frame) from e

    if not isinstance(data, dict):
        raise FrameDecodeError(f"Expected a JSON object, got {type(data).__name__}", frame)

    return data


def _has_book_shape(record: Dict[str, Any]) -> bool:
    return 'bids' in record and 'asks' in record


def _is_trade(record: Dict[str, Any]) -> bool:
    return record.get('e') == TRADE_EVENT


def _is_mini_ticker(record: Dict[str, Any]) -> bool:
    return record.get('e') == MINI_TICKER_EVENT


# Evaluated in order; first match wins
CLASSIFIERS: Sequence[Tuple[EventKind, Callable[[Dict[str, Any]], bool]]] = (
    (EventKind.TOP_OF_BOOK, _has_book_shape),
    (EventKind.TRADE, _is_trade),
    (EventKind.TICKER, _is_mini_ticker),
)


def classify(record: Dict[str, Any]) -> Optional[EventKind]:
    """Return the canonical kind of a decoded record, or None if it has none"""
    if not any(name in record for name in PRICE_FIELDS):
        return None

    for kind, predicate in CLASSIFIERS:
        if predicate(record):
            return kind

    logger.debug(f"Unrecognised record shape: {sorted(record.keys())}")
    return None


def stream_params(exchange_symbol: str, channels: Sequence[str] = CHANNELS) -> List[str]:
    return [f"{exchange_symbol}@{channel}" for channel in channels]


def build_control_message(method: str, params: Sequence[str], request_id: int = 1) -> str:
    """SUBSCRIBE / UNSUBSCRIBE request body"""
    if method not in ("SUBSCRIBE", "UNSUBSCRIBE"):
        raise ValueError(f"Unsupported control method: {method}")

    return json.dumps({
        'method': method,
        'params': list(params),
        'id': request_id,
    })
