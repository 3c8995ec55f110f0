import asyncio

import pytest

from binance_spot_feed.data_ingestion.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ReconnectPolicy,
)
from binance_spot_feed.data_ingestion.events import Ticker, TopOfBook, Trade
from binance_spot_feed.data_ingestion.exceptions import ConnectionLimitError, ConnectorStateError
from binance_spot_feed.data_ingestion.normalizer import SubscriptionTarget
from binance_spot_feed.data_ingestion.rate_limiter import RateLimiter

from fakes import (
    DEPTH_FRAME,
    SUBSCRIBE_ACK,
    TICKER_FRAME,
    TRADE_FRAME,
    FakeSocket,
    ManualClock,
    SocketFactory,
    wait_until,
)

FAST_RECONNECT = ReconnectPolicy(base_delay=0.01, factor=1.0, jitter=0.0)

STREAMS = ["btcusdt@miniTicker", "btcusdt@trade", "btcusdt@depth5"]


def make_manager(factory=None, limiter=None, clock=None, policy=FAST_RECONNECT):
    return ConnectionManager(
        target=SubscriptionTarget("btcusdt", "BTC-USDT"),
        rate_limiter=limiter or RateLimiter(),
        transport_factory=factory or SocketFactory(),
        ws_url="wss://example.invalid/ws",
        reconnect_policy=policy,
        clock=clock or ManualClock(),
    )


class Recorder:
    def __init__(self):
        self.batches = []

    def __call__(self, events):
        self.batches.append(events)


def test_fixed_delay_policy():
    policy = ReconnectPolicy(base_delay=10.0, factor=1.0, jitter=0.0)
    assert [policy.next_delay(n) for n in range(4)] == [10.0] * 4


def test_backoff_grows_and_is_capped():
    policy = ReconnectPolicy(base_delay=10.0, factor=2.0, max_delay=60.0, jitter=0.0)
    assert [policy.next_delay(n) for n in range(5)] == [10.0, 20.0, 40.0, 60.0, 60.0]


def test_jitter_stays_within_bound():
    policy = ReconnectPolicy(base_delay=10.0, factor=1.0, jitter=0.2)
    delays = [policy.next_delay(0) for _ in range(200)]
    assert all(8.0 <= delay <= 12.0 for delay in delays)


async def test_connect_subscribes_and_streams():
    socket = FakeSocket()
    manager = make_manager()

    assert await manager.connect(Recorder(), socket) is True

    assert manager.state == ConnectionState.STREAMING
    assert socket.sent == [{"method": "SUBSCRIBE", "params": STREAMS, "id": 1}]
    await manager.shutdown()
    assert socket.closed


async def test_connect_dials_configured_url():
    factory = SocketFactory()
    manager = make_manager(factory=factory)

    await manager.connect(Recorder())

    assert factory.urls == ["wss://example.invalid/ws"]
    await manager.shutdown()


async def test_events_are_delivered_in_wire_order():
    socket = FakeSocket()
    recorder = Recorder()
    manager = make_manager()
    await manager.connect(recorder, socket)

    for frame in (SUBSCRIBE_ACK, TRADE_FRAME, TICKER_FRAME, DEPTH_FRAME, "garbage"):
        socket.feed(frame)
    await wait_until(lambda: len(recorder.batches) == 5)

    kinds = [[type(event) for event in batch] for batch in recorder.batches]
    assert kinds == [[], [Trade], [Ticker], [TopOfBook], []]
    assert manager.stats["messages_received"] == 5
    assert manager.stats["events_emitted"] == 3
    assert manager.stats["frames_dropped"] == 1
    await manager.shutdown()


async def test_malformed_price_is_dropped_without_ending_session():
    socket = FakeSocket()
    recorder = Recorder()
    manager = make_manager()
    await manager.connect(recorder, socket)

    socket.feed({**TRADE_FRAME, "p": "abc"})
    socket.feed(TRADE_FRAME)
    await wait_until(lambda: len(recorder.batches) == 2)

    assert recorder.batches[0] == []
    assert recorder.batches[1][0].price == 16500.10
    assert manager.state == ConnectionState.STREAMING
    await manager.shutdown()


async def test_deeply_nested_frame_is_dropped_without_ending_session():
    socket = FakeSocket()
    recorder = Recorder()
    manager = make_manager()
    await manager.connect(recorder, socket)

    socket.feed("[" * 100_000)
    socket.feed(TRADE_FRAME)
    await wait_until(lambda: len(recorder.batches) == 2)

    assert recorder.batches[0] == []
    assert isinstance(recorder.batches[1][0], Trade)
    assert manager.stats["frames_dropped"] == 1
    assert manager.state == ConnectionState.STREAMING
    await manager.shutdown()


async def test_unexpected_processing_error_drops_only_that_frame():
    socket = FakeSocket()
    recorder = Recorder()
    manager = make_manager()
    await manager.connect(recorder, socket)

    to_canonical = manager.normalizer.to_canonical
    calls = []

    def flaky(kind, record):
        calls.append(kind)
        if len(calls) == 1:
            raise RuntimeError("unexpected")
        return to_canonical(kind, record)

    manager.normalizer.to_canonical = flaky
    socket.feed(TRADE_FRAME)
    socket.feed(TICKER_FRAME)
    await wait_until(lambda: len(recorder.batches) == 2)

    assert recorder.batches[0] == []
    assert isinstance(recorder.batches[1][0], Ticker)
    assert manager.stats["frames_dropped"] == 1
    assert manager.session is socket
    assert manager.state == ConnectionState.STREAMING
    await manager.shutdown()


async def test_callback_errors_do_not_end_session():
    socket = FakeSocket()
    received = []

    def on_message(events):
        received.append(events)
        if len(received) == 1:
            raise RuntimeError("consumer failure")

    manager = make_manager()
    await manager.connect(on_message, socket)
    socket.feed(TRADE_FRAME)
    socket.feed(TICKER_FRAME)
    await wait_until(lambda: len(received) == 2)

    assert manager.state == ConnectionState.STREAMING
    await manager.shutdown()


async def test_async_callback_is_awaited():
    socket = FakeSocket()
    received = []

    async def on_message(events):
        await asyncio.sleep(0)
        received.extend(events)

    manager = make_manager()
    await manager.connect(on_message, socket)
    socket.feed(DEPTH_FRAME)
    await wait_until(lambda: len(received) == 1)

    assert isinstance(received[0], TopOfBook)
    await manager.shutdown()


async def test_refused_subscribe_still_streams():
    clock = ManualClock()
    limiter = RateLimiter()
    for _ in range(5):
        limiter.admit_send(clock())
    socket = FakeSocket()
    recorder = Recorder()
    manager = make_manager(limiter=limiter, clock=clock)

    assert await manager.connect(recorder, socket) is True

    assert socket.sent == []
    assert manager.stats["sends_refused"] == 1
    assert manager.state == ConnectionState.STREAMING
    await manager.shutdown()


async def test_refused_admission_raises_and_does_not_retry():
    factory = SocketFactory()
    manager = make_manager(factory=factory, limiter=RateLimiter(max_connection_attempts=1))
    await manager.connect(Recorder())
    await manager.shutdown()

    with pytest.raises(ConnectionLimitError):
        await manager.connect(Recorder())

    await asyncio.sleep(0.05)
    assert len(factory.urls) == 1
    assert manager.state == ConnectionState.IDLE
    assert manager.session is None


async def test_second_session_is_refused_while_one_is_open():
    manager = make_manager()
    await manager.connect(Recorder(), FakeSocket())

    with pytest.raises(ConnectorStateError):
        await manager.connect(Recorder(), FakeSocket())
    await manager.shutdown()


async def test_reconnects_after_close_with_same_callback():
    first, second = FakeSocket(), FakeSocket()
    factory = SocketFactory(first, second)
    recorder = Recorder()
    manager = make_manager(factory=factory)
    await manager.connect(recorder)

    first.drop()
    await wait_until(lambda: len(factory.urls) == 2 and manager.state == ConnectionState.STREAMING)

    assert first.closed
    assert manager.session is second
    assert second.sent[0]["method"] == "SUBSCRIBE"
    assert manager.stats["reconnections"] == 1

    second.feed(TICKER_FRAME)
    await wait_until(lambda: len(recorder.batches) == 1)
    assert isinstance(recorder.batches[0][0], Ticker)
    await manager.shutdown()


async def test_graceful_close_also_reconnects():
    first = FakeSocket()
    factory = SocketFactory(first)
    manager = make_manager(factory=factory)
    await manager.connect(Recorder())

    await first.close(1000, "server restart")
    await wait_until(lambda: len(factory.urls) == 2 and manager.state == ConnectionState.STREAMING)
    await manager.shutdown()


async def test_transport_error_while_streaming_reconnects():
    first = FakeSocket()
    factory = SocketFactory(first)
    manager = make_manager(factory=factory)
    await manager.connect(Recorder())

    first.fail(ConnectionResetError("connection reset by peer"))
    await wait_until(lambda: len(factory.urls) == 2 and manager.state == ConnectionState.STREAMING)

    assert first.closed
    await manager.shutdown()


async def test_open_failure_rejects_connect_and_schedules_retry():
    factory = SocketFactory(OSError("network unreachable"))
    manager = make_manager(factory=factory)

    with pytest.raises(OSError):
        await manager.connect(Recorder())
    assert manager.state == ConnectionState.IDLE

    await wait_until(lambda: manager.state == ConnectionState.STREAMING)
    assert len(factory.urls) == 2
    await manager.shutdown()


async def test_stop_unsubscribes_without_closing():
    socket = FakeSocket()
    clock = ManualClock()
    manager = make_manager(clock=clock)
    await manager.connect(Recorder(), socket)

    assert await manager.stop() is True

    assert socket.sent[-1] == {"method": "UNSUBSCRIBE", "params": STREAMS, "id": 1}
    assert not socket.closed
    assert manager.state == ConnectionState.STREAMING
    await manager.shutdown()


async def test_stop_does_not_suppress_reconnect():
    first = FakeSocket()
    factory = SocketFactory(first)
    manager = make_manager(factory=factory)
    await manager.connect(Recorder())
    await manager.stop()

    first.drop()
    await wait_until(lambda: len(factory.urls) == 2 and manager.state == ConnectionState.STREAMING)
    await manager.shutdown()


async def test_stop_without_session_raises():
    manager = make_manager()
    with pytest.raises(ConnectorStateError):
        await manager.stop()


async def test_shutdown_cancels_pending_reconnect():
    first = FakeSocket()
    factory = SocketFactory(first)
    manager = make_manager(factory=factory, policy=ReconnectPolicy(base_delay=5.0, factor=1.0, jitter=0.0))
    await manager.connect(Recorder())

    first.drop()
    await wait_until(lambda: manager.state == ConnectionState.IDLE and manager._reconnect_task is not None)
    await manager.shutdown()

    assert manager._reconnect_task is None
    assert len(factory.urls) == 1


async def test_shutdown_during_reconnect_dial_opens_no_session():
    first, late = FakeSocket(), FakeSocket()
    gate = asyncio.Event()
    urls = []

    async def factory(url):
        urls.append(url)
        if len(urls) == 1:
            return first
        await gate.wait()
        return late

    manager = make_manager(factory=factory)
    await manager.connect(Recorder())

    first.drop()
    await wait_until(lambda: len(urls) == 2)
    await manager.shutdown()
    gate.set()
    await asyncio.sleep(0.05)

    assert manager.session is None
    assert manager.state == ConnectionState.IDLE
    assert manager._reconnect_task is None
    assert late.sent == []
    assert len(urls) == 2


async def test_failed_reconnect_dial_schedules_another():
    first = FakeSocket()
    factory = SocketFactory(first, OSError("network unreachable"))
    manager = make_manager(factory=factory)
    await manager.connect(Recorder())

    first.drop()
    await wait_until(lambda: len(factory.urls) == 3 and manager.state == ConnectionState.STREAMING)

    assert manager.stats["reconnections"] == 2
    await manager.shutdown()
