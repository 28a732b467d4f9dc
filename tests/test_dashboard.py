"""Integration tests for SalesDashboard: load, cache, mutations and the offline queue."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from sales_funnel.cache import ACTIVITIES, CLIENT_ROLLUP, FUNNEL_METRICS, OPPORTUNITIES
from sales_funnel.config import EngineSettings
from sales_funnel.dashboard import SalesDashboard
from sales_funnel.errors import StoreError, StoreUnavailable
from sales_funnel.models.activity import LineItem, SalesStatus
from sales_funnel.models.filters import SalesFilters
from sales_funnel.store import InMemoryStore, PendingMutationQueue


class FlakyStore(InMemoryStore):
    """InMemoryStore that can be switched offline."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.offline = False
        self.writes: list[tuple[str, str]] = []

    def _check(self, operation: str) -> None:
        if self.offline:
            raise StoreUnavailable(operation)

    async def query_activities(self, filters, offset, limit):
        self._check("query_activities")
        return await super().query_activities(filters, offset, limit)

    async def query_opportunities(self, filters):
        self._check("query_opportunities")
        return await super().query_opportunities(filters)

    async def update_opportunity(self, opportunity_id, status, line_items=None):
        self._check("update_opportunity")
        self.writes.append(("update", opportunity_id))
        await super().update_opportunity(opportunity_id, status, line_items)

    async def delete_activity(self, activity_id):
        self._check("delete_activity")
        self.writes.append(("delete", activity_id))
        await super().delete_activity(activity_id)


@pytest.fixture
def flaky_store(scenario_rows) -> FlakyStore:
    return FlakyStore(tasks=scenario_rows["tasks"], opportunities=scenario_rows["opportunities"])


@pytest.fixture
def queue(tmp_path: Path) -> PendingMutationQueue:
    return PendingMutationQueue(tmp_path / "queue.db")


class TestLoad:
    """Tests for load and the read caches."""

    def test_load_scenario(self, scenario_store) -> None:
        """Load returns metrics, both views and counts."""
        dashboard = SalesDashboard(scenario_store)
        snapshot = asyncio.run(dashboard.load())
        assert snapshot.metrics.total_closed_value == 1200
        assert snapshot.metrics.conversion_rate == 80.0
        assert [a.id for a in snapshot.activities] == ["t-visit", "t-call-1", "t-call-2", "o-standalone"]
        assert len(snapshot.clients) == 4
        assert snapshot.total_count == 4
        assert snapshot.total_is_exact is True

    def test_load_fills_every_cache(self, scenario_store) -> None:
        """All four namespaces hold an entry after load."""
        dashboard = SalesDashboard(scenario_store)
        asyncio.run(dashboard.load())
        filters = dashboard.filters
        assert dashboard.cache.contains(FUNNEL_METRICS, filters)
        assert dashboard.cache.contains(ACTIVITIES, filters)
        assert dashboard.cache.contains(CLIENT_ROLLUP, filters)
        assert dashboard.cache.contains(OPPORTUNITIES, filters.opportunity_scope())

    def test_metrics_cached_per_filters(self, scenario_store) -> None:
        """Second read for the same filters does not hit the store."""
        dashboard = SalesDashboard(scenario_store)
        with patch.object(scenario_store, "query_activities", wraps=scenario_store.query_activities) as spy:
            first = asyncio.run(dashboard.funnel_metrics(SalesFilters()))
            calls = spy.call_count
            second = asyncio.run(dashboard.funnel_metrics(SalesFilters(branch="all")))
        assert second is first
        assert spy.call_count == calls

    def test_cold_load_reads_opportunities_once(self, scenario_store) -> None:
        """Metrics, both views and the explicit read share one opportunity query."""
        dashboard = SalesDashboard(scenario_store)
        with patch.object(
            scenario_store, "query_opportunities", wraps=scenario_store.query_opportunities
        ) as spy:
            snapshot = asyncio.run(dashboard.load())
        assert spy.call_count == 1
        assert snapshot.metrics.total_closed_value == 1200

    def test_shared_opportunity_read_failure_reaches_every_caller(self, flaky_store) -> None:
        """A failed shared read raises in each waiter and is not cached."""
        dashboard = SalesDashboard(flaky_store)
        flaky_store.offline = True

        async def run():
            return await asyncio.gather(
                dashboard.opportunities(SalesFilters()),
                dashboard.opportunities(SalesFilters()),
                return_exceptions=True,
            )

        results = asyncio.run(run())
        assert all(isinstance(r, StoreUnavailable) for r in results)
        assert not dashboard.cache.contains(OPPORTUNITIES, SalesFilters().opportunity_scope())

    def test_filters_change_metrics(self, scenario_store) -> None:
        """Different filters compute separately."""
        dashboard = SalesDashboard(scenario_store)
        metrics = asyncio.run(dashboard.funnel_metrics(SalesFilters(branch="Ribeirao Preto")))
        assert metrics.contacts.call.count == 1
        assert metrics.total_closed_value == 0

    def test_failure_keeps_cached_metrics(self, flaky_store) -> None:
        """A failed read raises and leaves earlier cached metrics in place."""
        dashboard = SalesDashboard(flaky_store)
        good = asyncio.run(dashboard.funnel_metrics())
        flaky_store.offline = True
        with pytest.raises(StoreUnavailable):
            asyncio.run(dashboard.funnel_metrics(SalesFilters(branch="Campinas")))
        assert dashboard.cache.get(FUNNEL_METRICS, SalesFilters()) is good
        assert not dashboard.cache.contains(FUNNEL_METRICS, SalesFilters(branch="Campinas"))

    def test_load_more(self, scenario_store) -> None:
        """load_more pages the flat view."""
        dashboard = SalesDashboard(scenario_store, EngineSettings(page_size=2))

        async def run():
            snapshot = await dashboard.load()
            added = await dashboard.load_more()
            return snapshot, added

        snapshot, added = asyncio.run(run())
        assert snapshot.has_more is True
        assert added == 1
        assert dashboard.activity_view.total_is_exact is True
        assert len(dashboard.cached_view(ACTIVITIES)) == 4


class TestMutations:
    """Tests for edits, deletes and invalidation."""

    def test_edit_open_to_lost_updates_funnel(self, scenario_store) -> None:
        """Marking an open call lost moves it from open to lost without a reload."""
        dashboard = SalesDashboard(scenario_store)

        async def run():
            before = await dashboard.load()
            call = next(a for a in before.activities if a.id == "t-call-1")
            await dashboard.update_opportunity(call, SalesStatus.LOST)
            return before.metrics, await dashboard.funnel_metrics()

        before, after = asyncio.run(run())
        assert before.prospecting.open.count == 2
        assert after.prospecting.open.count == 1
        assert after.prospecting.lost.count == 1
        assert after.sales.won.count == 1

    def test_edit_refreshes_active_views(self, scenario_store) -> None:
        """The flat view shows the edited record after the mutation."""
        dashboard = SalesDashboard(scenario_store)

        async def run():
            await dashboard.load()
            await dashboard.update_opportunity("o-visit", "partial", [
                LineItem(name="Semente", selected=True, quantity=1, unit_price=400),
                LineItem(name="Adubo", selected=False, quantity=1, unit_price=600),
            ])

        asyncio.run(run())
        visit = next(a for a in dashboard.activity_view.activities if a.id == "t-visit")
        assert visit.opportunity_id == "o-visit"
        assert visit.partial_value == 400
        assert dashboard.cache.get(FUNNEL_METRICS, SalesFilters()).sales.partial.value == 600

    def test_opportunity_cache_invalidated_after_task_edit(self, scenario_store) -> None:
        """Editing through a task id drops the cached opportunity set."""
        dashboard = SalesDashboard(scenario_store)

        async def run():
            await dashboard.opportunities(SalesFilters())
            await dashboard.update_opportunity("t-call-2", SalesStatus.WON)
            return await dashboard.opportunities(SalesFilters())

        rows = asyncio.run(run())
        assert any(r.data.get("task_id") == "t-call-2" for r in rows)

    def test_inactive_views_not_refreshed(self, scenario_store) -> None:
        """Only active views re-fetch after a mutation."""
        dashboard = SalesDashboard(scenario_store)

        async def run():
            await dashboard.load()
            dashboard.coordinator.deactivate("clients")
            dashboard.coordinator.deactivate("activities")
            with patch.object(dashboard.client_view, "refresh") as client_refresh:
                await dashboard.delete_activity("t-call-2")
            return client_refresh

        client_refresh = asyncio.run(run())
        client_refresh.assert_not_called()
        assert dashboard.cache.get(FUNNEL_METRICS, SalesFilters()).contacts.call.count == 1

    def test_delete_activity(self, scenario_store) -> None:
        """Deleting invalidates and the record is gone on the next read."""
        dashboard = SalesDashboard(scenario_store)

        async def run():
            await dashboard.load()
            await dashboard.delete_activity("o-standalone")
            return await dashboard.funnel_metrics()

        metrics = asyncio.run(run())
        assert metrics.sales.partial.count == 0
        assert "o-standalone" not in [a.id for a in dashboard.activity_view.activities]

    def test_store_rejection_propagates(self, scenario_store) -> None:
        """Rejected mutations raise and are not queued."""
        dashboard = SalesDashboard(scenario_store)
        with pytest.raises(StoreError):
            asyncio.run(dashboard.update_opportunity("missing", SalesStatus.WON))


class TestOfflineQueue:
    """Tests for queuing and replaying mutations."""

    def test_unavailable_without_queue_raises(self, flaky_store) -> None:
        """With no queue configured the error propagates."""
        flaky_store.offline = True
        dashboard = SalesDashboard(flaky_store)
        with pytest.raises(StoreUnavailable):
            asyncio.run(dashboard.delete_activity("t-call-1"))

    def test_unavailable_is_queued(self, flaky_store, queue) -> None:
        """Mutations are queued when the store is unreachable."""
        flaky_store.offline = True
        dashboard = SalesDashboard(flaky_store, queue=queue)
        items = [LineItem(name="Semente", selected=True, quantity=1, unit_price=10)]
        assert asyncio.run(dashboard.update_opportunity("o-visit", SalesStatus.PARTIAL, items)) is False
        [pending] = queue.pending()
        assert pending.record_id == "o-visit"
        assert pending.payload["status"] == "partial"
        assert pending.payload["line_items"][0]["unit_price"] == 10

    def test_flush_replays_in_order(self, flaky_store, queue) -> None:
        """Queued mutations replay oldest first once the store is back."""
        dashboard = SalesDashboard(flaky_store, queue=queue)

        async def run():
            flaky_store.offline = True
            await dashboard.update_opportunity("o-visit", SalesStatus.LOST)
            await dashboard.delete_activity("t-call-1")
            flaky_store.offline = False
            return await dashboard.flush_pending()

        assert asyncio.run(run()) == 2
        assert flaky_store.writes == [("update", "o-visit"), ("delete", "t-call-1")]
        assert queue.count() == 0
        assert flaky_store.get_task("t-visit")["sales_type"] == "perdido"

    def test_flush_stops_when_still_offline(self, flaky_store, queue) -> None:
        """Replay stops at the first unavailable error and keeps the rest."""
        dashboard = SalesDashboard(flaky_store, queue=queue)
        flaky_store.offline = True

        async def run():
            await dashboard.delete_activity("t-call-1")
            await dashboard.delete_activity("t-call-2")
            return await dashboard.flush_pending()

        assert asyncio.run(run()) == 0
        pending = queue.pending()
        assert len(pending) == 2
        assert pending[0].attempts == 1

    def test_flush_gives_up_on_rejected(self, flaky_store, queue) -> None:
        """Mutations the store rejects are dropped, the rest still replay."""
        dashboard = SalesDashboard(flaky_store, queue=queue)

        async def run():
            flaky_store.offline = True
            await dashboard.delete_activity("missing")
            await dashboard.delete_activity("t-call-2")
            flaky_store.offline = False
            return await dashboard.flush_pending()

        assert asyncio.run(run()) == 1
        assert queue.count() == 0
        assert flaky_store.get_task("t-call-2") is None
