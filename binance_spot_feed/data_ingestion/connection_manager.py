"""
Binance Spot Connection Manager
==============================

Owns the websocket session of one connector and drives its lifecycle:

    IDLE -> CONNECTING -> SUBSCRIBING -> STREAMING -> CLOSING -> IDLE
                 \\             \\             \\
                  +-------------+-------------+--> ERRORED -> CLOSING

Every inbound frame is decoded, classified and normalized, then handed to the
consumer callback as a list of zero or one canonical events, in wire order.
Frame-level failures never end the session; only transport close or error
does, after which a reconnect is scheduled with the same callback.
"""

import asyncio
import inspect
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from websockets.exceptions import WebSocketException

from .events import CanonicalEvent
from .exceptions import ConnectionLimitError, ConnectorError, ConnectorStateError, FrameDecodeError
from .normalizer import Normalizer, SubscriptionTarget
from .rate_limiter import RateLimiter, now_ms
from .wire_codec import CHANNELS, build_control_message, classify, decode, stream_params
from ..utils.logger import get_logger


OnMessage = Callable[[List[CanonicalEvent]], Any]
TransportFactory = Callable[[str], Awaitable[Any]]

TRANSPORT_ERRORS = (OSError, WebSocketException, asyncio.TimeoutError)

logger = get_logger('connection_manager')


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    CLOSING = "closing"
    ERRORED = "errored"


@dataclass
class ReconnectPolicy:
    """
    Exponential backoff with a bounded jitter.

    ``factor=1.0`` and ``jitter=0.0`` give a fixed delay of ``base_delay``.
    Reconnection itself is never capped; only the delay is.
    """
    base_delay: float = 10.0
    factor: float = 2.0
    max_delay: float = 300.0
    jitter: float = 0.1

    def next_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.factor ** attempt), self.max_delay)
        if self.jitter > 0:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(delay, 0.0)


class ConnectionManager:
    """
    Single-session websocket owner with rate-limited control messages and
    automatic reconnection.

    All state is single-writer: it is mutated only from tasks running on the
    event loop that called ``connect``.
    """

    def __init__(self,
                 target: SubscriptionTarget,
                 rate_limiter: RateLimiter,
                 transport_factory: TransportFactory,
                 ws_url: str = "wss://stream.binance.com:9443/ws",
                 reconnect_policy: Optional[ReconnectPolicy] = None,
                 clock: Callable[[], int] = now_ms):
        self.target = target
        self.rate_limiter = rate_limiter
        self.transport_factory = transport_factory
        self.ws_url = ws_url
        self.reconnect_policy = reconnect_policy or ReconnectPolicy()
        self.clock = clock

        self.normalizer = Normalizer(target)

        # Connection state
        self.state = ConnectionState.IDLE
        self.session = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempt = 0

        self.stats = {
            'messages_received': 0,
            'events_emitted': 0,
            'frames_dropped': 0,
            'reconnections': 0,
            'sends_refused': 0,
        }

    def _set_state(self, state: ConnectionState):
        logger.debug(f"Connection state {self.state.value} -> {state.value}")
        self.state = state

    async def connect(self, on_message: OnMessage, socket=None) -> bool:
        """
        Open a session, subscribe and start streaming into ``on_message``.

        Raises:
            ConnectorStateError: a session is already open
            ConnectionLimitError: admission control refused the attempt
            OSError / WebSocketException: the transport failed to open; a
                reconnect has already been scheduled
        """
        if self.session is not None:
            raise ConnectorStateError(f"Session already open (state={self.state.value})")

        if not self.rate_limiter.admit_connection_attempt(self.clock()):
            logger.warning("Connection limit reached. Please wait before attempting again.")
            raise ConnectionLimitError(self.rate_limiter.pending_attempts,
                                       self.rate_limiter.connection_window_ms)

        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"Attempting to connect to Binance: {self.ws_url}")

        try:
            session = socket if socket is not None else await self.transport_factory(self.ws_url)
        except TRANSPORT_ERRORS as e:
            logger.error(f"WebSocket connection failed: {e}")
            self._set_state(ConnectionState.ERRORED)
            await self._teardown(None)
            self._schedule_reconnect(on_message)
            raise

        self.session = session
        self._reconnect_attempt = 0

        self._set_state(ConnectionState.SUBSCRIBING)
        try:
            if not await self.send_control("SUBSCRIBE"):
                # No confirmation is awaited and nothing retries the subscribe;
                # the session streams nothing until the next reconnect.
                logger.warning(f"Subscribe for {self.target.exchange_symbol} refused by rate limiter")
        except TRANSPORT_ERRORS as e:
            logger.error(f"Error during WebSocket open event: {e}")
            self._set_state(ConnectionState.ERRORED)
            await self._teardown(session)
            self._schedule_reconnect(on_message)
            raise

        self._set_state(ConnectionState.STREAMING)
        self._reader_task = asyncio.get_running_loop().create_task(
            self._read_loop(session, on_message)
        )
        logger.info(f"Streaming {', '.join(stream_params(self.target.exchange_symbol))}")
        return True

    async def send_control(self, method: str) -> bool:
        """Send SUBSCRIBE/UNSUBSCRIBE for all channels; False if rate limited"""
        if self.session is None:
            raise ConnectorStateError("No open session")

        message = build_control_message(method, stream_params(self.target.exchange_symbol, CHANNELS))

        if not self.rate_limiter.admit_send(self.clock()):
            self.stats['sends_refused'] += 1
            logger.warning(f"please wait before sending another message ({method} skipped)")
            return False

        await self.session.send(message)
        return True

    async def stop(self) -> bool:
        """Unsubscribe over the live session; the session stays open"""
        return await self.send_control("UNSUBSCRIBE")

    async def shutdown(self):
        """Cancel reconnects and the reader, then close the session"""
        reconnect = self._reconnect_task
        self._reconnect_task = None
        if reconnect is not None and not reconnect.done():
            # may be mid-dial; it must not open a session after we return
            reconnect.cancel()
            try:
                await reconnect
            except asyncio.CancelledError:
                pass

        reader = self._reader_task
        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        self._reader_task = None

        await self._teardown(self.session)

    def process_frame(self, frame) -> List[CanonicalEvent]:
        """Decode, classify and normalize one frame into 0 or 1 events"""
        try:
            record = decode(frame)
        except FrameDecodeError as e:
            self.stats['frames_dropped'] += 1
            logger.warning(f"{e}: {frame!r}")
            return []

        kind = classify(record)
        if kind is None:
            logger.debug(f"No handler for message: {record}")
            return []

        event = self.normalizer.to_canonical(kind, record)
        if event is None:
            self.stats['frames_dropped'] += 1
            logger.warning(f"Dropped malformed {kind.value} frame: {record}")
            return []

        self.stats['events_emitted'] += 1
        return [event]

    async def _read_loop(self, session, on_message: OnMessage):
        try:
            async for frame in session:
                self.stats['messages_received'] += 1
                try:
                    events = self.process_frame(frame)
                except Exception as e:
                    self.stats['frames_dropped'] += 1
                    logger.error(f"Error processing frame: {e!r}")
                    events = []
                await self._deliver(on_message, events)

            logger.info(f"WebSocket closed: {getattr(session, 'close_code', None)} - "
                        f"{getattr(session, 'close_reason', '')}")
        except TRANSPORT_ERRORS as e:
            self._set_state(ConnectionState.ERRORED)
            logger.error(f"WebSocket error: {e}")
        except Exception:
            self._set_state(ConnectionState.ERRORED)
            logger.exception("Reader stopped unexpectedly")

        await self._teardown(session)
        self._schedule_reconnect(on_message)

    async def _deliver(self, on_message: OnMessage, events: List[CanonicalEvent]):
        try:
            result = on_message(events)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in message callback: {e}")

    async def _teardown(self, session):
        self._set_state(ConnectionState.CLOSING)
        if session is not None:
            try:
                await session.close()
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Error closing WebSocket: {e}")
        self.session = None
        self._set_state(ConnectionState.IDLE)

    def _schedule_reconnect(self, on_message: OnMessage):
        pending = self._reconnect_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            return

        delay = self.reconnect_policy.next_delay(self._reconnect_attempt)
        self._reconnect_attempt += 1
        logger.info(f"Reconnecting in {delay:.1f}s (attempt {self._reconnect_attempt})")

        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay, on_message)
        )

    async def _reconnect_after(self, delay: float, on_message: OnMessage):
        # the handle stays set until connect returns so shutdown can cancel the dial
        await asyncio.sleep(delay)
        self.stats['reconnections'] += 1

        logger.info("Reconnecting to WebSocket...")
        try:
            await self.connect(on_message)
        except ConnectorError as e:
            logger.warning(f"Reconnect skipped: {e}")
        except TRANSPORT_ERRORS as e:
            # connect() has already scheduled the next attempt
            logger.error(f"Reconnect failed: {e}")

    def get_statistics(self) -> Dict:
        return {
            **self.stats,
            'state': self.state.value,
            'dropped_by_normalizer': self.normalizer.dropped,
            'pending_connection_attempts': self.rate_limiter.pending_attempts,
        }
