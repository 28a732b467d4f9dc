"""In-memory store with the same filter semantics as the remote store."""

import asyncio
import copy
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sales_funnel.errors import MalformedRecord, StoreError
from sales_funnel.models.activity import EPOCH, LineItem, SalesStatus
from sales_funnel.models.filters import Page, SalesFilters
from sales_funnel.models.raw import RawOpportunity, RawTask
from sales_funnel.normalizers.base import first_present, parse_timestamp
from sales_funnel.normalizers.constants import (
    CREATED_AT,
    KIND_TO_TASK_TYPE,
    OPP_BRANCH,
    OPP_CLIENT,
    OPP_CLOSED_VALUE,
    OPP_CREATED_AT,
    OPP_ITEMS,
    OPP_TASK_ID,
    OPP_TOTAL_VALUE,
    TASK_BRANCH,
    TASK_CLIENT,
    TASK_CREATED_BY,
    TASK_PARTIAL_VALUE,
    TASK_PRODUCTS,
    TASK_SALES_VALUE,
    TASK_TYPE,
)

from .base import ActivityStore, item_rows, opportunity_update_fields, product_rows, task_update_fields


def _created(row: dict[str, Any], keys: Sequence[str]) -> datetime:
    try:
        return parse_timestamp(first_present(row, keys), str(row.get("id")), "created_at")
    except MalformedRecord:
        return EPOCH


class InMemoryStore(ActivityStore):
    """
    Dict-backed store for tests, fixtures and the CLI.
    Rows are plain dicts keyed by id, shaped like the remote tables.
    """

    def __init__(
        self,
        tasks: Optional[Iterable[dict[str, Any]]] = None,
        opportunities: Optional[Iterable[dict[str, Any]]] = None,
    ):
        self._tasks: dict[str, dict[str, Any]] = {}
        self._opportunities: dict[str, dict[str, Any]] = {}
        for row in tasks or []:
            self.add_task(row)
        for row in opportunities or []:
            self.add_opportunity(row)

    def add_task(self, row: dict[str, Any]) -> None:
        """Insert or replace a task row."""
        self._tasks[str(row["id"])] = copy.deepcopy(row)

    def add_opportunity(self, row: dict[str, Any]) -> None:
        """Insert or replace an opportunity row."""
        self._opportunities[str(row["id"])] = copy.deepcopy(row)

    def get_task(self, task_id: str) -> Optional[dict[str, Any]]:
        row = self._tasks.get(task_id)
        return copy.deepcopy(row) if row else None

    def get_opportunity(self, opportunity_id: str) -> Optional[dict[str, Any]]:
        row = self._opportunities.get(opportunity_id)
        return copy.deepcopy(row) if row else None

    def _match_task(self, row: dict[str, Any], filters: SalesFilters) -> bool:
        cutoff = filters.cutoff()
        if cutoff is not None and _created(row, (CREATED_AT,)) < cutoff:
            return False
        if filters.consultant_id is not None and row.get(TASK_CREATED_BY) != filters.consultant_id:
            return False
        if filters.branch is not None and row.get(TASK_BRANCH) != filters.branch:
            return False
        if filters.activity_kind is not None:
            if row.get(TASK_TYPE) != KIND_TO_TASK_TYPE[filters.activity_kind]:
                return False
        return True

    def _match_opportunity(self, row: dict[str, Any], filters: SalesFilters) -> bool:
        cutoff = filters.cutoff()
        if cutoff is not None and _created(row, OPP_CREATED_AT) < cutoff:
            return False
        if filters.branch is not None and row.get(OPP_BRANCH) != filters.branch:
            return False
        return True

    async def query_activities(self, filters: SalesFilters, offset: int, limit: int) -> Page:
        await asyncio.sleep(0)
        matched = [r for r in self._tasks.values() if self._match_task(r, filters)]
        matched.sort(key=lambda r: _created(r, (CREATED_AT,)), reverse=True)
        window = matched[offset : offset + limit]
        return Page(
            rows=[RawTask(data=copy.deepcopy(r)) for r in window],
            total_count=len(matched),
        )

    async def query_opportunities(self, filters: SalesFilters) -> Page:
        await asyncio.sleep(0)
        matched = [r for r in self._opportunities.values() if self._match_opportunity(r, filters)]
        return Page(
            rows=[RawOpportunity(data=copy.deepcopy(r)) for r in matched],
            total_count=len(matched),
        )

    async def update_opportunity(
        self,
        opportunity_id: str,
        status: SalesStatus,
        line_items: Optional[Sequence[LineItem]] = None,
    ) -> None:
        """
        Update an opportunity and keep its task in sync.
        Called with a task id that has no opportunity yet, creates one linked to it.
        """
        await asyncio.sleep(0)
        opp = self._opportunities.get(opportunity_id)
        if opp is None:
            task = self._tasks.get(opportunity_id)
            if task is None:
                raise StoreError(
                    f"Opportunity not found: {opportunity_id}",
                    status_code=404,
                    operation="update_opportunity",
                )
            opp = self._opportunity_for_task(task)

        fields = opportunity_update_fields(status, line_items, opp)
        opp.update(fields)
        if line_items is not None:
            opp[OPP_ITEMS[0]] = item_rows(line_items, str(opp["id"]))

        task_id = opp.get(OPP_TASK_ID)
        task = self._tasks.get(str(task_id)) if task_id else None
        if task is not None:
            task.update(task_update_fields(fields))
            if line_items is not None:
                task[TASK_PRODUCTS[0]] = product_rows(line_items)

    def _opportunity_for_task(self, task: dict[str, Any]) -> dict[str, Any]:
        for opp in self._opportunities.values():
            if opp.get(OPP_TASK_ID) == task["id"]:
                return opp
        opp = {
            "id": str(uuid.uuid4()),
            OPP_TASK_ID: task["id"],
            OPP_CLIENT: task.get(TASK_CLIENT),
            OPP_BRANCH: task.get(TASK_BRANCH),
            OPP_TOTAL_VALUE: task.get(TASK_SALES_VALUE) or 0,
            OPP_CLOSED_VALUE: task.get(TASK_PARTIAL_VALUE) or 0,
            CREATED_AT: task.get(CREATED_AT),
        }
        self._opportunities[opp["id"]] = opp
        return opp

    async def delete_activity(self, activity_id: str) -> None:
        """Delete a task with its linked opportunities, or a standalone opportunity."""
        await asyncio.sleep(0)
        if activity_id in self._tasks:
            del self._tasks[activity_id]
            for opp_id in [k for k, o in self._opportunities.items() if o.get(OPP_TASK_ID) == activity_id]:
                del self._opportunities[opp_id]
            return
        if activity_id in self._opportunities:
            del self._opportunities[activity_id]
            return
        raise StoreError(f"Activity not found: {activity_id}", status_code=404, operation="delete_activity")
