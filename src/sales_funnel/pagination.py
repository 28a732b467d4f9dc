"""Paginated aggregators: incremental, filter-keyed views over the store."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from sales_funnel.errors import MalformedRecord, StoreError
from sales_funnel.models.activity import Activity
from sales_funnel.models.filters import SalesFilters
from sales_funnel.models.raw import RawOpportunity, RawTask
from sales_funnel.normalizers import OpportunityNormalizer, TaskNormalizer
from sales_funnel.reconcile import ReconciliationJoin, ReconciliationResult
from sales_funnel.rollup import ClientRollup, rollup_clients
from sales_funnel.store.base import ActivityStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

OpportunityLoader = Callable[[SalesFilters], Awaitable[Sequence[RawOpportunity]]]


class PaginatedAggregator:
    """
    Loads task pages on demand and reconciles them with the opportunity set.

    Every filter change or reset starts a new generation; responses that belong
    to an older generation are dropped instead of being appended.
    """

    def __init__(
        self,
        store: ActivityStore,
        filters: Optional[SalesFilters] = None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        opportunity_loader: Optional[OpportunityLoader] = None,
        task_normalizer: Optional[TaskNormalizer] = None,
        opportunity_normalizer: Optional[OpportunityNormalizer] = None,
    ):
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._store = store
        self._filters = filters or SalesFilters()
        self._page_size = page_size
        self._load_opportunities = opportunity_loader or self._query_opportunities
        self._task_normalizer = task_normalizer or TaskNormalizer()
        self._join = ReconciliationJoin(opportunity_normalizer)
        self._generation = 0
        self._clear()

    def _clear(self) -> None:
        self._tasks: list[Activity] = []
        self._task_errors: list[MalformedRecord] = []
        self._offset = 0
        self._task_total = 0
        self._has_more = True
        self._pages_loaded = 0
        self._in_flight_generation: Optional[int] = None
        self._last_error: Optional[StoreError] = None
        self._join.reset(self._generation)

    async def _query_opportunities(self, filters: SalesFilters) -> list[RawOpportunity]:
        page = await self._store.query_opportunities(filters)
        return [r for r in page.rows if isinstance(r, RawOpportunity)]

    @property
    def filters(self) -> SalesFilters:
        return self._filters

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def generation(self) -> int:
        return self._generation

    def set_filters(self, filters: SalesFilters) -> bool:
        """Switch filter set; restarts from offset 0. Returns False if unchanged."""
        if filters == self._filters:
            return False
        self._filters = filters
        self.reset()
        return True

    def reset(self) -> None:
        """Drop loaded pages and start a new generation with the same filters."""
        self._generation += 1
        self._clear()
        logger.debug("Aggregator reset to generation %d (%s)", self._generation, self._filters.cache_key())

    async def fetch_next_page(self) -> int:
        """
        Load the next task page. Returns the number of rows appended.
        No-op while a request for the current generation is in flight or when
        everything is loaded. StoreError propagates; loaded pages are kept.
        """
        if self.is_loading or not self._has_more:
            return 0

        generation = self._generation
        filters = self._filters
        offset = self._offset
        self._in_flight_generation = generation

        try:
            if self._join.has_opportunities:
                page = await self._store.query_activities(filters, offset, self._page_size)
                opportunities = None
            else:
                page, opportunities = await asyncio.gather(
                    self._store.query_activities(filters, offset, self._page_size),
                    self._load_opportunities(filters.opportunity_scope()),
                )
        except StoreError as e:
            if generation == self._generation:
                self._last_error = e
                logger.warning("Page at offset %d failed: %s", offset, e)
            raise
        finally:
            if self._in_flight_generation == generation:
                self._in_flight_generation = None

        if generation != self._generation:
            logger.debug("Discarding stale page at offset %d (generation %d)", offset, generation)
            return 0

        self._last_error = None
        task_rows = [r for r in page.rows if isinstance(r, RawTask)]
        normalized = self._task_normalizer.normalize_many(task_rows)
        self._tasks.extend(normalized.activities)
        self._task_errors.extend(normalized.errors)

        self._offset += len(page.rows)
        self._pages_loaded += 1
        self._task_total = page.total_count
        self._has_more = len(page.rows) == self._page_size and self._offset < page.total_count

        self._join.set_tasks(generation, self._tasks, complete=not self._has_more)
        if opportunities is not None:
            self._join.set_opportunities(generation, opportunities)
        return len(page.rows)

    async def load_all(self) -> None:
        """Fetch pages until the store reports no more rows."""
        while self._has_more:
            if not await self.fetch_next_page() and self._has_more:
                # another caller holds the in-flight slot
                return

    async def refresh(self) -> None:
        """Re-fetch as many pages as were loaded, under a new generation."""
        pages = max(1, self._pages_loaded)
        self.reset()
        for _ in range(pages):
            if not self._has_more:
                break
            await self.fetch_next_page()

    @property
    def result(self) -> Optional[ReconciliationResult]:
        return self._join.result()

    @property
    def activities(self) -> list[Activity]:
        """Reconciled activities so far; empty until the first page lands."""
        result = self._join.result()
        return list(result.activities) if result else []

    @property
    def items(self) -> list[Any]:
        """View rows; the flat view shows activities as-is."""
        return self.activities

    @property
    def total_count(self) -> int:
        """
        Tasks matching the filters plus standalone opportunities not claimed by
        any loaded or unloaded task. While pages remain, an opportunity whose
        task is not loaded yet may belong to a later page, so only opportunities
        without a task are counted until the total is exact.
        """
        result = self._join.result()
        if result is None:
            return self._task_total
        if self.total_is_exact:
            return self._task_total + result.standalone
        return self._task_total + result.unlinked

    @property
    def total_is_exact(self) -> bool:
        """Standalone count is only final once every task page is loaded."""
        return not self._has_more and self._join.ready

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def is_loading(self) -> bool:
        return self._in_flight_generation == self._generation

    @property
    def loaded_task_count(self) -> int:
        return len(self._tasks)

    @property
    def last_error(self) -> Optional[StoreError]:
        return self._last_error

    @property
    def skipped(self) -> int:
        """Rows dropped as malformed, tasks and opportunities combined."""
        result = self._join.result()
        return len(self._task_errors) + (result.skipped if result else 0)


class ClientRollupAggregator(PaginatedAggregator):
    """Same pagination, grouped into one row per client."""

    @property
    def items(self) -> list[ClientRollup]:
        return rollup_clients(self.activities)
