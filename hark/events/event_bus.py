"""Async fan-out event bus used to publish agent snapshots to displays."""

import asyncio
import logging
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

_DEFAULT_QUEUE_SIZE = 64

T = TypeVar("T")


class EventBus(Generic[T]):
    """Fan-out event bus backed by asyncio.Queue.

    Each subscriber gets its own queue. When an event is emitted it is pushed
    to every subscriber queue; a full queue drops the event for that
    subscriber only, so a slow display never stalls the agent.

    The bus remembers the most recent event. New subscribers receive it
    first, which lets a display render the current state without waiting
    for the next change.
    """

    def __init__(self, maxsize: int = _DEFAULT_QUEUE_SIZE) -> None:
        self._subscribers: list[asyncio.Queue[T]] = []
        self._lock = asyncio.Lock()
        self._maxsize = maxsize
        self._latest: T | None = None

    async def emit(self, event: T) -> None:
        """Record *event* as the latest and push it to every subscriber."""
        async with self._lock:
            self._latest = event
            subscribers = list(self._subscribers)

        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Subscriber queue full, dropping %s for one subscriber",
                    type(event).__name__,
                )

    async def subscribe(self) -> asyncio.Queue[T]:
        """Create a subscriber queue, primed with the latest event if any."""
        queue: asyncio.Queue[T] = asyncio.Queue(maxsize=self._maxsize)
        async with self._lock:
            if self._latest is not None:
                queue.put_nowait(self._latest)
            self._subscribers.append(queue)
        logger.debug("New subscriber added (total: %d)", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[T]) -> None:
        """Remove a subscriber queue.  No-op if the queue is not registered."""
        async with self._lock:
            try:
                self._subscribers.remove(queue)
            except ValueError:
                logger.debug("Attempted to unsubscribe an unknown queue, ignoring")

    @property
    def latest(self) -> T | None:
        """The most recently emitted event, or None before the first emit."""
        return self._latest

    @property
    def subscriber_count(self) -> int:
        """Return the current number of active subscribers."""
        return len(self._subscribers)
