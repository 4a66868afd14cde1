"""
Change notifier for order-store mutations.

Every committed mutation calls bump() once. Stream sessions subscribe and
re-read their data whenever the version moves. Subscribers only ever see
the latest version: a burst of bumps may arrive as a single change, but the
final value is always observed.
"""

from __future__ import annotations

import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


class Subscription:
    """
    Async iterator over notifier versions for a single subscriber.

    Yields the version current at subscription time first, then every
    later version it observes. Never yields the same or a lower version
    twice.
    """

    def __init__(self, notifier: ChangeNotifier, loop: asyncio.AbstractEventLoop):
        self._notifier = notifier
        self._loop = loop
        self._changed = asyncio.Event()
        self._changed.set()
        self._last_seen: int | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _wake(self) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._changed.set()
            return

        try:
            self._loop.call_soon_threadsafe(self._changed.set)
        except RuntimeError:
            # Subscriber's loop is gone; nothing left to notify.
            logger.debug("notifier: dropping wake-up for subscriber on closed loop")

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> int:
        while True:
            if self._closed:
                raise StopAsyncIteration
            await self._changed.wait()
            self._changed.clear()
            if self._closed:
                raise StopAsyncIteration

            version = self._notifier.version
            if self._last_seen is None or version > self._last_seen:
                self._last_seen = version
                return version

    def close(self) -> None:
        """Unregister from the notifier and end iteration."""
        if self._closed:
            return
        self._closed = True
        self._notifier._unsubscribe(self)
        self._changed.set()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ChangeNotifier:
    """
    Monotonic version counter with broadcast wake-ups.

    bump() is fire-and-forget: it never waits on subscribers and never
    raises into the mutation that called it.
    """

    def __init__(self, initial_version: int = 0):
        self._version = initial_version
        self._lock = threading.Lock()
        self._subscribers: set[Subscription] = set()

    @property
    def version(self) -> int:
        return self._version

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def bump(self) -> None:
        """Signal that a mutation has committed."""
        with self._lock:
            self._version += 1
            subscribers = list(self._subscribers)

        for subscription in subscribers:
            try:
                subscription._wake()
            except Exception:
                logger.exception("notifier: failed to wake subscriber")

    def subscribe(self) -> Subscription:
        """
        Register a new subscriber bound to the running event loop.

        Must be called from inside a coroutine.
        """
        subscription = Subscription(self, asyncio.get_running_loop())
        with self._lock:
            self._subscribers.add(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(subscription)
