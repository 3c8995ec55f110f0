"""
Spot Connector Configuration
"""

import os
import logging
from typing import Dict, Any
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Setup logger
logger = logging.getLogger(__name__)


class BinanceConfig(BaseModel):
    """Binance spot websocket configuration"""
    ws_url: str = Field(default="wss://stream.binance.com:9443/ws", description="Public websocket URL")
    ping_interval: float = Field(default=20.0, description="Keepalive ping interval in seconds")
    ping_timeout: float = Field(default=10.0, description="Keepalive pong timeout in seconds")
    close_timeout: float = Field(default=10.0, description="Closing handshake timeout in seconds")


class RateLimitConfig(BaseModel):
    """Admission control limits"""
    # Binance allows 300 connection requests per 5 minutes
    max_connection_attempts: int = Field(default=300, description="Connection attempts allowed per window")
    connection_window_ms: int = Field(default=300_000, description="Connection attempt window (ms)")

    # Binance allows 5 incoming control messages per second per connection
    max_messages_per_window: int = Field(default=5, description="Control messages allowed per send window")
    send_window_ms: int = Field(default=1_000, description="Send window (ms)")

    def validate_against_exchange_limits(self) -> bool:
        """
        Check the configured limits against the documented Binance spot limits

        Exceeding them gets the IP banned, so an over-generous configuration
        is reported loudly. Returns True when both limits are within bounds.
        """
        valid = True

        connection_rate = self.max_connection_attempts / (self.connection_window_ms / 300_000)
        if connection_rate > 300:
            logger.warning(f"CONFIG WARNING: {self.max_connection_attempts} connection attempts per "
                           f"{self.connection_window_ms}ms exceeds 300 per 5 minutes")
            valid = False

        message_rate = self.max_messages_per_window / (self.send_window_ms / 1_000)
        if message_rate > 5:
            logger.warning(f"CONFIG WARNING: {self.max_messages_per_window} control messages per "
                           f"{self.send_window_ms}ms exceeds 5 per second")
            valid = False

        return valid


class ReconnectConfig(BaseModel):
    """Reconnect backoff configuration"""
    base_delay: float = Field(default=10.0, description="First reconnect delay in seconds")
    factor: float = Field(default=2.0, description="Backoff multiplier (1.0 = fixed delay)")
    max_delay: float = Field(default=300.0, description="Upper bound on the reconnect delay in seconds")
    jitter: float = Field(default=0.1, description="Random jitter as a fraction of the delay")


class ConnectorGroup(BaseModel):
    """Trading-pair group (base asset)"""
    name: str = Field(default="BTC", description="Base asset of the trading pair")


class ConnectorConfiguration(BaseModel):
    """Per-connector configuration"""
    quote_asset: str = Field(default="USDT", description="Quote asset of the trading pair")


def get_binance_symbol(group: ConnectorGroup, connector_config: ConnectorConfiguration) -> str:
    """Exchange-native stream symbol, e.g. ``btcusdt``"""
    return f"{group.name}{connector_config.quote_asset}".lower()


def get_skl_symbol(group: ConnectorGroup, connector_config: ConnectorConfiguration) -> str:
    """Canonical symbol carried by every emitted event, e.g. ``BTC-USDT``"""
    return f"{group.name}-{connector_config.quote_asset}".upper()


class Config:
    """Main configuration class"""

    def __init__(self):
        self.binance = BinanceConfig(
            ws_url=os.getenv("BINANCE_SPOT_WS_URL", "wss://stream.binance.com:9443/ws")
        )
        self.rate_limit = RateLimitConfig()
        self.reconnect = ReconnectConfig(
            base_delay=float(os.getenv("RECONNECT_BASE_DELAY", "10.0"))
        )
        self.group = ConnectorGroup(name=os.getenv("CONNECTOR_GROUP", "BTC"))
        self.connector = ConnectorConfiguration(
            quote_asset=os.getenv("CONNECTOR_QUOTE_ASSET", "USDT")
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return {
            "binance": self.binance.model_dump(),
            "rate_limit": self.rate_limit.model_dump(),
            "reconnect": self.reconnect.model_dump(),
            "group": self.group.model_dump(),
            "connector": self.connector.model_dump(),
        }


# Global configuration instance
config = Config()
