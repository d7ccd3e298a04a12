"""
Claims Dashboard Controller.

Owns the claim list shown while a user is signed in, the change-feed
subscription that keeps it fresh, and the consumer task that turns change
events into re-fetches. All coroutines run on the session's background
loop; ``snapshot()`` may be called from the Streamlit script thread.

Concurrency rules:
- Fetches may overlap (manual refresh and change feed); whichever completes
  last replaces the list.
- A fetch that completes after unmount, or after a later mount, is discarded.
"""

import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from medclaim.core.enums import ChangeEventType
from medclaim.gateways.base import ChangeChannelGateway
from medclaim.schemas.claim import Claim, ClaimCreate, DocumentUpload
from medclaim.services.change_feed import ChangeFeedSubscriber
from medclaim.services.claim_repository import ClaimRepository
from medclaim.services.notifications import Notifier
from medclaim.utils.errors import FetchError, MedClaimError
from medclaim.utils.logging import get_logger

logger = get_logger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch claims"


@dataclass(frozen=True)
class DashboardSnapshot:
    """Read-only view of the dashboard state for rendering."""

    claims: tuple[Claim, ...]
    loading: bool
    mounted: bool
    live_updates: bool
    last_refreshed: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.claims


class ClaimsDashboard:
    """Claim list plus live updates for one signed-in view."""

    def __init__(
        self,
        repository: ClaimRepository,
        channel: ChangeChannelGateway,
        notifier: Notifier,
        table: str = "claims",
    ):
        self._repository = repository
        self._channel = channel
        self._notifier = notifier
        self._table = table

        self._lock = threading.Lock()
        self._claims: tuple[Claim, ...] = ()
        self._in_flight = 0
        self._mounted = False
        self._epoch = 0
        self._last_refreshed: Optional[datetime] = None

        self._feed: Optional[ChangeFeedSubscriber] = None
        self._consumer: Optional[asyncio.Task[None]] = None
        self.refresh_count = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_mounted(self) -> bool:
        with self._lock:
            return self._mounted

    @property
    def claims(self) -> list[Claim]:
        with self._lock:
            return list(self._claims)

    def snapshot(self) -> DashboardSnapshot:
        with self._lock:
            return DashboardSnapshot(
                claims=self._claims,
                loading=self._in_flight > 0,
                mounted=self._mounted,
                live_updates=self._feed is not None and self._feed.is_active and self._consumer_alive(),
                last_refreshed=self._last_refreshed,
            )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def mount(self) -> None:
        """Subscribe to changes, start the consumer and load the list."""
        with self._lock:
            if self._mounted:
                return
            self._mounted = True
            self._epoch += 1

        feed = ChangeFeedSubscriber(self._channel, self._table, ChangeEventType.ALL)
        try:
            await feed.start()
        except MedClaimError as e:
            logger.warning(f"Live updates unavailable: {e.message}")
            self._notifier.error("Live updates unavailable; use Refresh to reload claims")
        else:
            self._feed = feed
            self._consumer = asyncio.create_task(self._consume(feed), name="claims-change-feed")
            self._consumer.add_done_callback(self._on_consumer_done)

        await self.refresh()

    def deactivate(self) -> None:
        """
        Stop accepting results and clear the list immediately.

        Safe to call from any thread; ``unmount`` completes the teardown.
        """
        with self._lock:
            if self._mounted:
                self._mounted = False
                self._epoch += 1
            self._claims = ()
            self._last_refreshed = None

    async def unmount(self) -> None:
        """Cancel the consumer and dispose of the subscription. Idempotent."""
        self.deactivate()

        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass

        feed, self._feed = self._feed, None
        if feed is not None:
            await feed.close()

    # =========================================================================
    # Data
    # =========================================================================

    async def refresh(self) -> list[Claim]:
        """
        Re-fetch the full list.

        On FetchError the list falls back to empty and an error notification
        is pushed. Returns what this fetch produced, applied or not.
        """
        with self._lock:
            if not self._mounted:
                return []
            epoch = self._epoch
            self._in_flight += 1
        self.refresh_count += 1

        try:
            claims = await self._repository.list()
        except FetchError as e:
            logger.error(f"Claim fetch failed: {e.message}")
            self._notifier.error(FETCH_FAILED_MESSAGE)
            claims = []
        finally:
            with self._lock:
                self._in_flight -= 1

        with self._lock:
            if not self._mounted or epoch != self._epoch:
                logger.debug(f"Discarded late fetch result ({len(claims)} claims)")
                return claims
            self._claims = tuple(claims)
            self._last_refreshed = datetime.now(timezone.utc)
        return claims

    async def submit_claim(self, claim: ClaimCreate, document: Optional[DocumentUpload] = None) -> Optional[Claim]:
        """Create a claim and reload the list. Repository errors propagate."""
        created = await self._repository.create(claim, document)
        await self.refresh()
        return created

    def _consumer_alive(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def _consume(self, feed: ChangeFeedSubscriber) -> None:
        while True:
            batch = await feed.next_batch()
            kinds = ", ".join(sorted({change.event_type.value for change in batch}))
            logger.debug(f"Change feed: {len(batch)} event(s) [{kinds}], refreshing")
            try:
                await self.refresh()
            except MedClaimError as e:
                logger.error(f"Refresh after change event failed: {e.message}")

    def _on_consumer_done(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Change feed consumer stopped: {error!r}")
            self._notifier.error("Live updates stopped; use Refresh to reload claims")
