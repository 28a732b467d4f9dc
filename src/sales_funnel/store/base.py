"""Abstract store contract consumed by the engine."""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from sales_funnel.models.activity import LineItem, SalesOutcome, SalesStatus
from sales_funnel.models.filters import Page, SalesFilters
from sales_funnel.models.raw import RawTask
from sales_funnel.normalizers.constants import (
    OPP_CLOSED_VALUE,
    OPP_STATUS,
    OPP_TOTAL_VALUE,
    OUTCOME_TO_SALES_TYPE,
    SALES_STATUS_TO_LABEL,
    STATUS_LABELS,
    TASK_IS_PROSPECT,
    TASK_PARTIAL_VALUE,
    TASK_SALES_CONFIRMED,
    TASK_SALES_TYPE,
    TASK_SALES_VALUE,
)
from sales_funnel.valuation import products_selected, products_total


class ActivityStore(ABC):
    """
    Queryable remote store exposing filterable range-reads with counts.
    All methods are coroutines; implementations raise StoreUnavailable on
    network failures and StoreError when the store rejects a request.
    """

    @abstractmethod
    async def query_activities(self, filters: SalesFilters, offset: int, limit: int) -> Page:
        """Task rows matching all filters, newest first, with the total match count."""
        pass

    @abstractmethod
    async def query_opportunities(self, filters: SalesFilters) -> Page:
        """Full opportunity match set for the branch/period of filters (no paging)."""
        pass

    @abstractmethod
    async def update_opportunity(
        self,
        opportunity_id: str,
        status: SalesStatus,
        line_items: Optional[Sequence[LineItem]] = None,
    ) -> None:
        """Single mutation entry point for status and line-item edits."""
        pass

    @abstractmethod
    async def delete_activity(self, activity_id: str) -> None:
        """Delete a task (or a standalone opportunity) by id."""
        pass

    async def fetch_all_activities(self, filters: SalesFilters, page_size: int = 50) -> list[RawTask]:
        """
        Load every task page for filters.
        Default implementation: sequential range-reads until a short page.
        """
        rows: list[RawTask] = []
        offset = 0
        while True:
            page = await self.query_activities(filters, offset, page_size)
            rows.extend(r for r in page.rows if isinstance(r, RawTask))
            offset += len(page.rows)
            if len(page.rows) < page_size or offset >= page.total_count:
                return rows

    async def close(self) -> None:
        """Release client resources. No-op by default."""
        return None


def opportunity_update_fields(
    status: SalesStatus,
    line_items: Optional[Sequence[LineItem]],
    current: dict[str, Any],
) -> dict[str, Any]:
    """
    Column values written to an opportunity row for a status/line-item edit.
    Totals are recomputed from line items only when items are supplied.
    """
    total = current.get(OPP_TOTAL_VALUE) or 0
    if line_items is not None:
        total = products_total(line_items)

    if status is SalesStatus.WON:
        closed = total
    elif status is SalesStatus.PARTIAL:
        closed = products_selected(line_items) if line_items is not None else current.get(OPP_CLOSED_VALUE) or 0
    else:
        closed = 0

    return {
        OPP_STATUS: SALES_STATUS_TO_LABEL[status],
        OPP_TOTAL_VALUE: total,
        OPP_CLOSED_VALUE: closed,
    }


def task_update_fields(opportunity_fields: dict[str, Any]) -> dict[str, Any]:
    """Task columns kept in sync with the opportunity that claims the task."""
    is_prospect, confirmed, outcome = STATUS_LABELS[opportunity_fields[OPP_STATUS]]
    return {
        TASK_IS_PROSPECT: is_prospect,
        TASK_SALES_CONFIRMED: confirmed,
        TASK_SALES_TYPE: OUTCOME_TO_SALES_TYPE.get(outcome) if outcome else None,
        TASK_SALES_VALUE: opportunity_fields[OPP_TOTAL_VALUE],
        TASK_PARTIAL_VALUE: opportunity_fields[OPP_CLOSED_VALUE] if outcome is SalesOutcome.PARTIAL else 0,
    }


def item_rows(line_items: Sequence[LineItem], opportunity_id: str) -> list[dict[str, Any]]:
    """Opportunity item rows for the given line items."""
    return [
        {
            "opportunity_id": opportunity_id,
            "produto": item.name,
            "preco_unit": item.unit_price,
            "qtd_ofertada": item.quantity,
            "qtd_vendida": item.quantity if item.selected else 0,
        }
        for item in line_items
    ]


def product_rows(line_items: Sequence[LineItem]) -> list[dict[str, Any]]:
    """Task product rows for the given line items."""
    return [
        {"name": item.name, "selected": item.selected, "quantity": item.quantity, "price": item.unit_price}
        for item in line_items
    ]
