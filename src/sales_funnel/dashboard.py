"""Dashboard service: wires store, aggregators, reducer, caches and invalidation."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from sales_funnel.cache import (
    ACTIVITIES,
    CLIENT_ROLLUP,
    FUNNEL_METRICS,
    OPPORTUNITIES,
    CacheStore,
    InvalidationCoordinator,
)
from sales_funnel.config import EngineSettings
from sales_funnel.errors import StoreError, StoreUnavailable
from sales_funnel.funnel import FunnelMetrics, reduce_funnel
from sales_funnel.models.activity import Activity, LineItem, SalesStatus
from sales_funnel.models.filters import SalesFilters
from sales_funnel.models.raw import RawOpportunity
from sales_funnel.normalizers import TaskNormalizer
from sales_funnel.pagination import ClientRollupAggregator, PaginatedAggregator
from sales_funnel.reconcile import reconcile
from sales_funnel.rollup import ClientRollup
from sales_funnel.store.base import ActivityStore
from sales_funnel.store.offline_queue import MUTATION_DELETE, MUTATION_UPDATE, PendingMutationQueue

logger = logging.getLogger(__name__)

VIEW_ACTIVITIES = "activities"
VIEW_CLIENTS = "clients"
VIEW_FUNNEL = "funnel"


@dataclass
class DashboardSnapshot:
    """Everything one dashboard screen shows for a filter set."""

    filters: SalesFilters
    metrics: FunnelMetrics
    activities: list[Activity] = field(default_factory=list)
    clients: list[ClientRollup] = field(default_factory=list)
    total_count: int = 0
    total_is_exact: bool = False
    has_more: bool = False


class SalesDashboard:
    """
    Read side and mutation entry points for the sales funnel screens.

    Mutations that fail with StoreUnavailable are queued when a queue is
    configured; every successful mutation invalidates all cached views.
    """

    def __init__(
        self,
        store: ActivityStore,
        settings: Optional[EngineSettings] = None,
        *,
        cache: Optional[CacheStore] = None,
        queue: Optional[PendingMutationQueue] = None,
    ):
        self.settings = settings or EngineSettings()
        self.cache = cache or CacheStore()
        self.coordinator = InvalidationCoordinator(self.cache)
        self.queue = queue
        self._store = store
        self._filters = SalesFilters()
        self._epoch = 0
        self._opportunity_reads: dict[str, asyncio.Task] = {}

        page_size = self.settings.page_size
        self.activity_view = PaginatedAggregator(
            store, self._filters, page_size=page_size, opportunity_loader=self.opportunities
        )
        self.client_view = ClientRollupAggregator(
            store, self._filters, page_size=page_size, opportunity_loader=self.opportunities
        )

        self.coordinator.register_view(VIEW_ACTIVITIES, self._refresh_activities)
        self.coordinator.register_view(VIEW_CLIENTS, self._refresh_clients)
        self.coordinator.register_view(VIEW_FUNNEL, self._refresh_funnel)

    @property
    def store(self) -> ActivityStore:
        return self._store

    @property
    def filters(self) -> SalesFilters:
        return self._filters

    def set_filters(self, filters: SalesFilters) -> bool:
        """Apply a filter set to both paginated views. Returns False if unchanged."""
        if filters == self._filters:
            return False
        self._filters = filters
        self.activity_view.set_filters(filters)
        self.client_view.set_filters(filters)
        return True

    async def opportunities(self, filters: SalesFilters) -> list[RawOpportunity]:
        """
        Opportunity rows for a branch/period scope, cached. Concurrent callers
        on a cold cache share one in-flight read per scope.
        """
        scope = filters.opportunity_scope()
        cached = self.cache.get(OPPORTUNITIES, scope)
        if cached is not None:
            return cached
        key = scope.cache_key()
        read = self._opportunity_reads.get(key)
        if read is None:
            read = asyncio.ensure_future(self._read_opportunities(scope, self._epoch))
            self._opportunity_reads[key] = read
            read.add_done_callback(lambda done: self._forget_read(key, done))
        return await asyncio.shield(read)

    async def _read_opportunities(self, scope: SalesFilters, epoch: int) -> list[RawOpportunity]:
        page = await self._store.query_opportunities(scope)
        rows = [r for r in page.rows if isinstance(r, RawOpportunity)]
        if epoch == self._epoch:
            self.cache.set(OPPORTUNITIES, scope, rows)
        return rows

    def _forget_read(self, key: str, read: asyncio.Task) -> None:
        if self._opportunity_reads.get(key) is read:
            del self._opportunity_reads[key]

    async def funnel_metrics(self, filters: Optional[SalesFilters] = None) -> FunnelMetrics:
        """Metrics over every activity matching filters. Failures leave the cache untouched."""
        filters = filters or self._filters
        cached = self.cache.get(FUNNEL_METRICS, filters)
        if cached is not None:
            return cached

        epoch = self._epoch
        task_rows, opportunity_rows = await asyncio.gather(
            self._store.fetch_all_activities(filters, page_size=self.settings.page_size),
            self.opportunities(filters),
        )
        tasks = TaskNormalizer().normalize_many(task_rows)
        result = reconcile(tasks.activities, opportunity_rows)
        metrics = reduce_funnel(result.activities, filters, skipped=tasks.skipped + result.skipped)
        if epoch == self._epoch:
            self.cache.set(FUNNEL_METRICS, filters, metrics)
        return metrics

    def _snapshot_views(self) -> None:
        if self.activity_view.filters == self._filters:
            self.cache.set(ACTIVITIES, self._filters, self.activity_view.items)
        if self.client_view.filters == self._filters:
            self.cache.set(CLIENT_ROLLUP, self._filters, self.client_view.items)

    def cached_view(self, namespace: str, filters: Optional[SalesFilters] = None):
        """Last snapshot of a view, for instant display while it reloads."""
        return self.cache.get(namespace, filters or self._filters)

    async def load(self, filters: Optional[SalesFilters] = None) -> DashboardSnapshot:
        """Load metrics, the first page of both views and the opportunity set concurrently."""
        if filters is not None:
            self.set_filters(filters)
        for view in (VIEW_ACTIVITIES, VIEW_CLIENTS, VIEW_FUNNEL):
            self.coordinator.activate(view)

        metrics, *_ = await asyncio.gather(
            self.funnel_metrics(self._filters),
            self._first_page(self.activity_view),
            self._first_page(self.client_view),
            self.opportunities(self._filters),
        )
        self._snapshot_views()
        return self.snapshot(metrics)

    @staticmethod
    async def _first_page(view: PaginatedAggregator) -> None:
        if view.loaded_task_count == 0 and view.has_more:
            await view.fetch_next_page()

    def snapshot(self, metrics: FunnelMetrics) -> DashboardSnapshot:
        return DashboardSnapshot(
            filters=self._filters,
            metrics=metrics,
            activities=self.activity_view.items,
            clients=self.client_view.items,
            total_count=self.activity_view.total_count,
            total_is_exact=self.activity_view.total_is_exact,
            has_more=self.activity_view.has_more,
        )

    async def load_more(self, view_name: str = VIEW_ACTIVITIES) -> int:
        """Next page of one view."""
        view = self.client_view if view_name == VIEW_CLIENTS else self.activity_view
        added = await view.fetch_next_page()
        self._snapshot_views()
        return added

    async def _refresh_activities(self) -> None:
        await self.activity_view.refresh()
        self._snapshot_views()

    async def _refresh_clients(self) -> None:
        await self.client_view.refresh()
        self._snapshot_views()

    async def _refresh_funnel(self) -> None:
        await self.funnel_metrics(self._filters)

    async def _after_mutation(self, kind: str, record_id: str) -> None:
        self._epoch += 1
        # reads started before the mutation must not be shared with later callers
        self._opportunity_reads.clear()
        await self.coordinator.on_mutation(kind, record_id)

    async def update_opportunity(
        self,
        target: Union[Activity, str],
        status: Union[SalesStatus, str],
        line_items: Optional[Sequence[LineItem]] = None,
    ) -> bool:
        """
        Edit status and/or line items. Accepts an activity (its opportunity id is
        used when known) or a raw id. Returns False when the edit was queued.
        """
        if isinstance(target, Activity):
            record_id = target.opportunity_id or target.id
        else:
            record_id = target
        status = SalesStatus(status)
        try:
            await self._store.update_opportunity(record_id, status, line_items)
        except StoreUnavailable as e:
            if self.queue is None:
                raise
            payload = {
                "status": status.value,
                "line_items": [i.model_dump() for i in line_items] if line_items is not None else None,
            }
            self.queue.enqueue(MUTATION_UPDATE, record_id, payload)
            logger.warning("Queued update of %s: %s", record_id, e)
            return False
        await self._after_mutation(MUTATION_UPDATE, record_id)
        return True

    async def delete_activity(self, target: Union[Activity, str]) -> bool:
        """Delete an activity. Returns False when the delete was queued."""
        record_id = target.id if isinstance(target, Activity) else target
        try:
            await self._store.delete_activity(record_id)
        except StoreUnavailable as e:
            if self.queue is None:
                raise
            self.queue.enqueue(MUTATION_DELETE, record_id)
            logger.warning("Queued delete of %s: %s", record_id, e)
            return False
        await self._after_mutation(MUTATION_DELETE, record_id)
        return True

    async def flush_pending(self) -> int:
        """
        Replay queued mutations oldest first. Stops at the first StoreUnavailable
        so order is kept; mutations the store rejects are marked failed.
        Returns the number replayed.
        """
        if self.queue is None:
            return 0
        replayed = 0
        for mutation in self.queue.pending():
            try:
                if mutation.kind == MUTATION_UPDATE:
                    raw_items = mutation.payload.get("line_items")
                    items = [LineItem(**i) for i in raw_items] if raw_items is not None else None
                    await self._store.update_opportunity(
                        mutation.record_id, SalesStatus(mutation.payload["status"]), items
                    )
                else:
                    await self._store.delete_activity(mutation.record_id)
            except StoreUnavailable as e:
                self.queue.record_failure(mutation.id, str(e))
                logger.warning("Store still unavailable; %d mutations left queued", self.queue.count())
                break
            except StoreError as e:
                self.queue.record_failure(mutation.id, str(e), give_up=True)
                logger.error("Dropping queued %s on %s: %s", mutation.kind, mutation.record_id, e)
                continue
            self.queue.mark_done(mutation.id)
            replayed += 1

        if replayed:
            await self._after_mutation("flush_pending", f"{replayed} queued mutations")
        return replayed

    async def close(self) -> None:
        await self._store.close()
