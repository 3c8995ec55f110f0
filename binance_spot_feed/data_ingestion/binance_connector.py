"""
Binance Spot Public Connector
=============================

Public entry point for the spot market-data feed:
- one websocket session per connector, reconnected automatically
- mini-ticker, trade and top-5 depth channels for a single trading pair
- canonical Trade / Ticker / TopOfBook events delivered to one callback
- admission control on connection attempts and control messages
"""

import asyncio
from functools import partial
from typing import Dict, Optional

import websockets

from .connection_manager import ConnectionManager, OnMessage, ReconnectPolicy, TransportFactory
from .normalizer import SubscriptionTarget
from .rate_limiter import RateLimiter
from ..utils.config import (
    Config,
    ConnectorConfiguration,
    ConnectorGroup,
    config,
    get_binance_symbol,
    get_skl_symbol,
)
from ..utils.logger import get_logger

logger = get_logger('binance_connector')


class BinanceSpotPublicConnector:
    """
    Public market-data connector for one Binance spot trading pair.

    ``connect`` opens the session and starts delivering events; the session
    is re-opened after every close until the process discards the connector.
    ``stop`` unsubscribes without closing, ``cleanup`` halts the periodic
    rate-limit reset.
    """

    def __init__(self,
                 group: ConnectorGroup,
                 connector_config: ConnectorConfiguration,
                 settings: Optional[Config] = None,
                 transport_factory: Optional[TransportFactory] = None,
                 reconnect_policy: Optional[ReconnectPolicy] = None):
        settings = settings or config

        self.group = group
        self.connector_config = connector_config
        self.exchange_symbol = get_binance_symbol(group, connector_config)
        self.skl_symbol = get_skl_symbol(group, connector_config)
        self.public_websocket_address = settings.binance.ws_url

        settings.rate_limit.validate_against_exchange_limits()
        self.rate_limiter = RateLimiter(**settings.rate_limit.model_dump())

        if transport_factory is None:
            transport_factory = partial(
                websockets.connect,
                ping_interval=settings.binance.ping_interval,
                ping_timeout=settings.binance.ping_timeout,
                close_timeout=settings.binance.close_timeout,
            )

        self.connection = ConnectionManager(
            target=SubscriptionTarget(self.exchange_symbol, self.skl_symbol),
            rate_limiter=self.rate_limiter,
            transport_factory=transport_factory,
            ws_url=self.public_websocket_address,
            reconnect_policy=reconnect_policy or ReconnectPolicy(**settings.reconnect.model_dump()),
        )

        logger.info(f"BinanceSpotPublicConnector initialized for {self.exchange_symbol} -> {self.skl_symbol}")

    async def connect(self, on_message: OnMessage, socket=None) -> bool:
        """
        Open the websocket session and stream events into ``on_message``

        Args:
            on_message: called once per frame with a list of 0 or 1 events
            socket: pre-built transport, used instead of dialing the endpoint
        """
        self.rate_limiter.start_periodic_reset()
        return await self.connection.connect(on_message, socket)

    async def stop(self) -> bool:
        """Unsubscribe all channels; reconnection is not suppressed"""
        return await self.connection.stop()

    def cleanup(self):
        """Halt the periodic rate-limit reset; the session is left open"""
        self.rate_limiter.stop_periodic_reset()
        logger.info("Cleanup done.")

    async def shutdown(self):
        """Process exit: cleanup, cancel reconnects and close the session"""
        self.cleanup()
        await self.connection.shutdown()

    def get_statistics(self) -> Dict:
        """Get connector statistics"""
        return {
            **self.connection.get_statistics(),
            'exchange_symbol': self.exchange_symbol,
            'symbol': self.skl_symbol,
        }


# Example usage for testing
if __name__ == "__main__":
    from ..utils.logger import setup_production_logging

    async def run_connector():
        setup_production_logging()
        connector = BinanceSpotPublicConnector(config.group, config.connector)

        def on_message(events):
            for event in events:
                logger.info(f"{event.to_dict()}")

        try:
            await connector.connect(on_message)
            await asyncio.sleep(30)
            logger.info(f"Statistics: {connector.get_statistics()}")
        finally:
            await connector.shutdown()

    asyncio.run(run_connector())
