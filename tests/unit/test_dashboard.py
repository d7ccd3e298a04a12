"""
Unit Tests for the Claims Dashboard Controller
"""

import asyncio

import pytest

from medclaim.core.enums import NotificationLevel
from medclaim.schemas.claim import ClaimCreate
from medclaim.services.claim_repository import ClaimRepository
from medclaim.services.dashboard import FETCH_FAILED_MESSAGE, ClaimsDashboard
from medclaim.utils.errors import FetchError, MedClaimError

ROW = {"patient_name": "Live Update", "diagnosis": "Flu", "treatment": "Rest", "cost": 800}


class ControlledRepository:
    """Repository whose list() calls complete only when the test resolves them."""

    def __init__(self):
        self.pending: list[asyncio.Future] = []

    async def list(self):
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future


class FailingRepository:
    async def list(self):
        raise FetchError("permission denied")


@pytest.fixture
def repository(demo_backend):
    return ClaimRepository(demo_backend.claims, demo_backend.storage)


@pytest.mark.unit
class TestMountAndRefresh:
    @pytest.mark.asyncio
    async def test_mount_loads_claims(self, repository, demo_backend, notifier):
        await repository.create(ClaimCreate(patient_name="Asha Rao", diagnosis="Fracture", treatment="Cast", cost=5000))
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)

        await dashboard.mount()
        snapshot = dashboard.snapshot()

        assert snapshot.mounted is True
        assert snapshot.live_updates is True
        assert snapshot.loading is False
        assert [claim.patient_name for claim in snapshot.claims] == ["Asha Rao"]
        await dashboard.unmount()

    @pytest.mark.asyncio
    async def test_change_feed_triggers_refresh(self, repository, demo_backend, demo_store, notifier, wait_until):
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)
        await dashboard.mount()
        assert dashboard.claims == []

        demo_store.insert_row("claims", dict(ROW))

        await wait_until(lambda: len(dashboard.claims) == 1)
        assert dashboard.claims[0].patient_name == "Live Update"
        await dashboard.unmount()

    @pytest.mark.asyncio
    async def test_fetch_failure_falls_back_to_empty(self, demo_backend, notifier):
        dashboard = ClaimsDashboard(FailingRepository(), demo_backend.changes, notifier)

        await dashboard.mount()

        assert dashboard.claims == []
        messages = [(n.level, n.message) for n in notifier.drain()]
        assert (NotificationLevel.ERROR, FETCH_FAILED_MESSAGE) in messages
        await dashboard.unmount()

    @pytest.mark.asyncio
    async def test_submit_claim_refreshes(self, repository, demo_backend, notifier):
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)
        await dashboard.mount()

        created = await dashboard.submit_claim(
            ClaimCreate(patient_name="Asha Rao", diagnosis="Fracture", treatment="Cast", cost=5000)
        )

        assert created.document_url is None
        assert [claim.id for claim in dashboard.claims] == [created.id]
        await dashboard.unmount()

    @pytest.mark.asyncio
    async def test_refresh_before_mount_is_noop(self, repository, demo_backend, notifier):
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)

        assert await dashboard.refresh() == []
        assert dashboard.refresh_count == 0


@pytest.mark.unit
class TestConcurrentFetches:
    @pytest.mark.asyncio
    async def test_last_completing_fetch_wins(self, demo_backend, demo_store, notifier, make_claim, wait_until):
        repository = ControlledRepository()
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)

        mount = asyncio.create_task(dashboard.mount())
        await wait_until(lambda: len(repository.pending) == 1)
        repository.pending[0].set_result([make_claim("initial")])
        await mount

        manual = asyncio.create_task(dashboard.refresh())
        await wait_until(lambda: len(repository.pending) == 2)
        assert dashboard.snapshot().loading is True

        # Change event while the manual refresh is still in flight
        demo_store.insert_row("claims", dict(ROW))
        await wait_until(lambda: len(repository.pending) == 3)

        feed_result = [make_claim("from change feed")]
        manual_result = [make_claim("from manual refresh")]

        repository.pending[2].set_result(feed_result)
        await wait_until(lambda: dashboard.claims == feed_result)

        repository.pending[1].set_result(manual_result)
        await manual

        assert dashboard.claims == manual_result
        assert dashboard.snapshot().loading is False
        await dashboard.unmount()

    @pytest.mark.asyncio
    async def test_result_after_unmount_is_discarded(self, demo_backend, demo_store, notifier, make_claim, wait_until):
        repository = ControlledRepository()
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)

        mount = asyncio.create_task(dashboard.mount())
        await wait_until(lambda: len(repository.pending) == 1)

        dashboard.deactivate()
        repository.pending[0].set_result([make_claim("stale")])
        await mount

        assert dashboard.claims == []
        assert dashboard.snapshot().mounted is False
        await dashboard.unmount()
        assert demo_store.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unmount_is_idempotent(self, repository, demo_backend, demo_store, notifier):
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)
        await dashboard.mount()

        await dashboard.unmount()
        await dashboard.unmount()

        assert demo_store.subscriber_count == 0
        assert dashboard.is_mounted is False
        snapshot = dashboard.snapshot()
        assert snapshot.claims == ()
        assert snapshot.live_updates is False


class BreakingRepository:
    """Serves the first list() call, then raises ``error`` on every later one."""

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def list(self):
        self.calls += 1
        if self.calls > 1:
            raise self.error
        return []


@pytest.mark.unit
class TestConsumerFailures:
    @pytest.mark.asyncio
    async def test_application_error_keeps_consumer_running(self, demo_backend, demo_store, notifier, wait_until):
        repository = BreakingRepository(MedClaimError("row decode failed"))
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)
        await dashboard.mount()

        demo_store.insert_row("claims", dict(ROW))
        await wait_until(lambda: repository.calls == 2)
        demo_store.insert_row("claims", dict(ROW))
        await wait_until(lambda: repository.calls == 3)

        assert dashboard.snapshot().live_updates is True
        await dashboard.unmount()

    @pytest.mark.asyncio
    async def test_unexpected_error_turns_live_updates_off(self, demo_backend, demo_store, notifier, wait_until):
        repository = BreakingRepository(RuntimeError("boom"))
        dashboard = ClaimsDashboard(repository, demo_backend.changes, notifier)
        await dashboard.mount()
        assert dashboard.snapshot().live_updates is True

        demo_store.insert_row("claims", dict(ROW))

        await wait_until(lambda: dashboard.snapshot().live_updates is False)
        messages = [n.message for n in notifier.drain()]
        assert "Live updates stopped; use Refresh to reload claims" in messages
        await dashboard.unmount()
        assert demo_store.subscriber_count == 0
