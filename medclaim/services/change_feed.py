"""
Change Feed Subscriber.

Listens for row changes on the claims table and turns them into
"refresh requested" items on an asyncio queue. Provider callbacks may fire
on any thread; items are always handed to the owning event loop with
``call_soon_threadsafe``.
"""

import asyncio
from typing import Optional

from medclaim.core.enums import ChangeEventType
from medclaim.gateways.base import ChangeChannelGateway, ChangeSubscription
from medclaim.schemas.claim import ChangeEvent
from medclaim.utils.logging import get_logger

logger = get_logger(__name__)


class ChangeFeedSubscriber:
    """
    Subscription to claim changes with explicit disposal.

    Example:
        >>> async with ChangeFeedSubscriber(backend.changes, "claims") as feed:
        ...     events = await feed.next_batch()
    """

    def __init__(
        self,
        channel: ChangeChannelGateway,
        table: str,
        event: ChangeEventType = ChangeEventType.ALL,
    ):
        self._channel = channel
        self._table = table
        self._event = event
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[ChangeEvent]] = None
        self._subscription: Optional[ChangeSubscription] = None
        self._closed = False

    @property
    def is_active(self) -> bool:
        return self._subscription is not None and self._subscription.is_active and not self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Open the subscription on the running event loop."""
        if self._subscription is not None:
            return
        if self._closed:
            raise RuntimeError("Change feed subscriber has been closed")
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._subscription = await self._channel.subscribe(self._table, self._event, self._on_change)
        logger.info(f"Change feed started: table={self._table} event={self._event.value}")

    def _on_change(self, change: ChangeEvent) -> None:
        if self._closed or self._loop is None or self._queue is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, change)
        except RuntimeError:
            # Loop already closed during teardown
            logger.debug(f"Dropped {change.event_type.value} event after loop shutdown")

    async def next_batch(self) -> list[ChangeEvent]:
        """
        Wait for at least one change, then return it together with every
        change already queued behind it.
        """
        if self._queue is None:
            raise RuntimeError("Change feed subscriber has not been started")
        batch = [await self._queue.get()]
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return batch

    async def close(self) -> None:
        """Dispose of the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()
            logger.info(f"Change feed stopped: table={self._table}")

    async def __aenter__(self) -> "ChangeFeedSubscriber":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
