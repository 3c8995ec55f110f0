"""
Binance to Canonical Event Normalizer
=====================================

Maps a classified exchange-native record onto one canonical event. Parsing
failures (non-numeric strings, NaN/inf, negative values, missing fields,
empty book sides, unknown maker-flag values) drop the event: ``to_canonical``
returns None and never raises.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import ValidationError

from .events import CanonicalEvent, EventKind, Side, Ticker, TopOfBook, Trade
from .wire_codec import BinanceMarketDepth, BinanceMiniTicker, BinanceTradeEvent


# Keyed by the string form of the "buyer is maker" flag. A maker buyer means
# the aggressor sold.
BINANCE_SIDE_MAP: Dict[str, Side] = {
    'true': Side.SELL,
    'false': Side.BUY,
}


@dataclass(frozen=True)
class SubscriptionTarget:
    """Exchange-native symbol plus the canonical symbol it maps to"""
    exchange_symbol: str
    canonical_symbol: str

    def __post_init__(self):
        if not self.exchange_symbol or not self.canonical_symbol:
            raise ValueError("Subscription target needs both an exchange and a canonical symbol")


def lookup_side(flag: Any) -> Optional[Side]:
    if isinstance(flag, bool):
        key = 'true' if flag else 'false'
    elif isinstance(flag, str):
        key = flag.strip().lower()
    else:
        return None
    return BINANCE_SIDE_MAP.get(key)


class Normalizer:
    """Builds canonical events for one subscription target"""

    def __init__(self, target: SubscriptionTarget):
        self.target = target
        self.dropped = 0

    def to_canonical(self, kind: EventKind, record: Dict[str, Any]) -> Optional[CanonicalEvent]:
        try:
            if kind == EventKind.TRADE:
                event = self._create_trade(BinanceTradeEvent.model_validate(record))
            elif kind == EventKind.TOP_OF_BOOK:
                event = self._create_top_of_book(BinanceMarketDepth.model_validate(record))
            elif kind == EventKind.TICKER:
                event = self._create_ticker(BinanceMiniTicker.model_validate(record))
            else:
                event = None
        except (ValidationError, IndexError) as e:
            logger.debug(f"Dropping {kind.value} record: {e}")
            event = None

        if event is None:
            self.dropped += 1
        return event

    def _create_trade(self, trade: BinanceTradeEvent) -> Optional[Trade]:
        side = lookup_side(trade.buyer_is_maker)
        if side is None:
            logger.debug(f"Unknown maker flag {trade.buyer_is_maker!r} on trade {trade.trade_id}")
            return None

        return Trade(
            symbol=self.target.canonical_symbol,
            price=trade.price,
            size=trade.quantity,
            side=side,
            timestamp=trade.trade_time * 1000,
        )

    def _create_top_of_book(self, depth: BinanceMarketDepth) -> TopOfBook:
        bid_price, bid_size = depth.best_bid()
        ask_price, ask_size = depth.best_ask()

        return TopOfBook(
            symbol=self.target.canonical_symbol,
            bid_price=bid_price,
            bid_size=bid_size,
            ask_price=ask_price,
            ask_size=ask_size,
            # Partial book depth streams carry no timestamp
            timestamp=0,
        )

    def _create_ticker(self, ticker: BinanceMiniTicker) -> Ticker:
        return Ticker(
            symbol=self.target.canonical_symbol,
            last_price=ticker.close_price,
            timestamp=ticker.event_time * 1000,
        )
