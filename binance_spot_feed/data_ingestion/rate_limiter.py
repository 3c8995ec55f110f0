"""
Connection and Control-Message Rate Limiter
==========================================

Admission control for the two limits Binance enforces on public streams:
- connection attempts within a rolling 5 minute window
- control messages (SUBSCRIBE/UNSUBSCRIBE) within a 1 second window

Timestamps are passed in explicitly (epoch milliseconds) so the policy is
testable without wall-clock waits. Tracked attempts are pruned on every
check and, independently, cleared in full by a periodic reset task.
"""

import asyncio
import time
from collections import deque
from typing import Deque, Optional

from loguru import logger


def now_ms() -> int:
    """Current wall clock in epoch milliseconds"""
    return int(time.time() * 1000)


class RateLimiter:
    """
    Owns the attempt and send counters of a single connector.

    Not thread-safe; all calls are expected from the connector's event loop.
    """

    def __init__(self,
                 max_connection_attempts: int = 300,
                 connection_window_ms: int = 300_000,
                 max_messages_per_window: int = 5,
                 send_window_ms: int = 1_000):
        self.max_connection_attempts = max_connection_attempts
        self.connection_window_ms = connection_window_ms
        self.max_messages_per_window = max_messages_per_window
        self.send_window_ms = send_window_ms

        self.connection_attempts: Deque[int] = deque()

        self.last_message_sent_time = 0
        self.number_of_messages_sent = 0

        self._reset_task: Optional[asyncio.Task] = None

    def admit_connection_attempt(self, now: int) -> bool:
        """Record a connection attempt at ``now`` if the window allows it"""
        while self.connection_attempts and now - self.connection_attempts[0] > self.connection_window_ms:
            self.connection_attempts.popleft()

        if len(self.connection_attempts) >= self.max_connection_attempts:
            logger.warning(f"Connection limit reached: {len(self.connection_attempts)} attempts "
                           f"in the last {self.connection_window_ms}ms")
            return False

        self.connection_attempts.append(now)
        return True

    def admit_send(self, now: int) -> bool:
        """
        Count a control message sent at ``now`` if the send window allows it.

        The window restarts only once a full second has passed since the last
        admitted send, so a steady trickle never resets the count.
        """
        if now - self.last_message_sent_time >= self.send_window_ms:
            self.number_of_messages_sent = 0
            self.last_message_sent_time = now

        if self.number_of_messages_sent >= self.max_messages_per_window:
            return False

        self.number_of_messages_sent += 1
        self.last_message_sent_time = now
        return True

    def reset_connection_attempts(self) -> None:
        self.connection_attempts.clear()

    @property
    def pending_attempts(self) -> int:
        return len(self.connection_attempts)

    # Periodic reset

    @property
    def periodic_reset_running(self) -> bool:
        return self._reset_task is not None and not self._reset_task.done()

    def start_periodic_reset(self) -> None:
        """Clear all tracked attempts every window, regardless of their age"""
        if self.periodic_reset_running:
            return
        self._reset_task = asyncio.get_running_loop().create_task(self._periodic_reset())

    def stop_periodic_reset(self) -> None:
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None

    async def _periodic_reset(self) -> None:
        interval = self.connection_window_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.reset_connection_attempts()
            logger.info(f"Connection attempts reset after {interval:.0f}s")
