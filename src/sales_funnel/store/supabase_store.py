"""Supabase (PostgREST) store over httpx."""

import logging
from typing import Any, Optional, Sequence

import httpx

from sales_funnel.errors import StoreError, StoreUnavailable
from sales_funnel.models.activity import LineItem, SalesStatus
from sales_funnel.models.filters import Page, SalesFilters
from sales_funnel.models.raw import RawOpportunity, RawTask
from sales_funnel.normalizers.constants import (
    KIND_TO_TASK_TYPE,
    OPP_BRANCH,
    OPP_CLIENT,
    OPP_CLOSED_VALUE,
    OPP_TASK_ID,
    OPP_TOTAL_VALUE,
    TASK_BRANCH,
    TASK_CLIENT,
    TASK_PARTIAL_VALUE,
    TASK_SALES_VALUE,
)

from .base import ActivityStore, item_rows, opportunity_update_fields, product_rows, task_update_fields

logger = logging.getLogger(__name__)

TASK_SELECT = (
    "id,client,filial,responsible,task_type,status,is_prospect,sales_confirmed,sales_type,"
    "sales_value,partial_sales_value,start_date,end_date,created_at,updated_at,created_by,"
    "products(name,selected,quantity,price)"
)
OPPORTUNITY_SELECT = (
    "id,task_id,cliente_nome,filial,status,valor_total_oportunidade,valor_venda_fechada,"
    "data_criacao,created_at,updated_at,opportunity_items(produto,preco_unit,qtd_ofertada,qtd_vendida)"
)
OPPORTUNITY_CURRENT = "id,task_id,valor_total_oportunidade,valor_venda_fechada"
TASK_SEED = "id,client,filial,sales_value,partial_sales_value,created_at"


def parse_content_range(header: Optional[str], fallback: int) -> int:
    """Total from a PostgREST Content-Range header ("0-49/1234" or "*/0")."""
    if not header or "/" not in header:
        return fallback
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else fallback


class SupabaseStore(ActivityStore):
    """
    Reads tasks and opportunities through the PostgREST API of a Supabase project.
    Network errors, timeouts and 5xx responses raise StoreUnavailable.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            timeout=timeout,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[list[tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500:
                raise StoreUnavailable(operation, e, status_code=status) from e
            raise StoreError(
                f"{operation} rejected: HTTP {status}", status_code=status, operation=operation
            ) from e
        except httpx.RequestError as e:
            raise StoreUnavailable(operation, e) from e
        return response

    @staticmethod
    def _common_params(filters: SalesFilters) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        cutoff = filters.cutoff()
        if cutoff is not None:
            params.append(("created_at", f"gte.{cutoff.isoformat()}"))
        if filters.branch is not None:
            params.append(("filial", f"eq.{filters.branch}"))
        return params

    async def query_activities(self, filters: SalesFilters, offset: int, limit: int) -> Page:
        params = [("select", TASK_SELECT)] + self._common_params(filters)
        if filters.consultant_id is not None:
            params.append(("created_by", f"eq.{filters.consultant_id}"))
        if filters.activity_kind is not None:
            params.append(("task_type", f"eq.{KIND_TO_TASK_TYPE[filters.activity_kind]}"))
        params += [("order", "created_at.desc"), ("offset", str(offset)), ("limit", str(limit))]

        response = await self._request(
            "query_activities", "GET", "/tasks", params=params, headers={"Prefer": "count=exact"}
        )
        rows = response.json() or []
        total = parse_content_range(response.headers.get("content-range"), offset + len(rows))
        return Page(rows=[RawTask(data=r) for r in rows], total_count=total)

    async def query_opportunities(self, filters: SalesFilters) -> Page:
        params = [("select", OPPORTUNITY_SELECT)] + self._common_params(filters)
        response = await self._request(
            "query_opportunities", "GET", "/opportunities", params=params, headers={"Prefer": "count=exact"}
        )
        rows = response.json() or []
        total = parse_content_range(response.headers.get("content-range"), len(rows))
        return Page(rows=[RawOpportunity(data=r) for r in rows], total_count=total)

    async def _find_opportunity(self, record_id: str) -> dict[str, Any]:
        """Opportunity by its own id, or by the task it belongs to; created for the task if missing."""
        for column in ("id", OPP_TASK_ID):
            response = await self._request(
                "update_opportunity",
                "GET",
                "/opportunities",
                params=[("select", OPPORTUNITY_CURRENT), (column, f"eq.{record_id}")],
            )
            found = response.json() or []
            if found:
                return found[0]

        response = await self._request(
            "update_opportunity",
            "GET",
            "/tasks",
            params=[("select", TASK_SEED), ("id", f"eq.{record_id}")],
        )
        tasks = response.json() or []
        if not tasks:
            raise StoreError(
                f"Opportunity not found: {record_id}", status_code=404, operation="update_opportunity"
            )
        task = tasks[0]
        response = await self._request(
            "update_opportunity",
            "POST",
            "/opportunities",
            json={
                OPP_TASK_ID: task["id"],
                OPP_CLIENT: task.get(TASK_CLIENT),
                OPP_BRANCH: task.get(TASK_BRANCH),
                OPP_TOTAL_VALUE: task.get(TASK_SALES_VALUE) or 0,
                OPP_CLOSED_VALUE: task.get(TASK_PARTIAL_VALUE) or 0,
            },
            headers={"Prefer": "return=representation"},
        )
        created = response.json() or []
        if not created:
            raise StoreError(
                f"Opportunity insert for task {record_id} returned no row", operation="update_opportunity"
            )
        logger.info("Created opportunity %s for task %s", created[0].get("id"), record_id)
        return created[0]

    async def update_opportunity(
        self,
        opportunity_id: str,
        status: SalesStatus,
        line_items: Optional[Sequence[LineItem]] = None,
    ) -> None:
        """PATCH the opportunity, replace its items, then sync the linked task."""
        current = await self._find_opportunity(opportunity_id)
        opp_id = str(current["id"])
        fields = opportunity_update_fields(status, line_items, current)

        await self._request(
            "update_opportunity", "PATCH", "/opportunities", params=[("id", f"eq.{opp_id}")], json=fields
        )
        if line_items is not None:
            await self._request(
                "update_opportunity",
                "DELETE",
                "/opportunity_items",
                params=[("opportunity_id", f"eq.{opp_id}")],
            )
            if line_items:
                await self._request(
                    "update_opportunity", "POST", "/opportunity_items", json=item_rows(line_items, opp_id)
                )

        task_id = current.get(OPP_TASK_ID)
        if task_id:
            await self._request(
                "update_opportunity",
                "PATCH",
                "/tasks",
                params=[("id", f"eq.{task_id}")],
                json=task_update_fields(fields),
            )
            if line_items is not None:
                await self._request(
                    "update_opportunity", "DELETE", "/products", params=[("task_id", f"eq.{task_id}")]
                )
                if line_items:
                    rows = [dict(r, task_id=task_id) for r in product_rows(line_items)]
                    await self._request("update_opportunity", "POST", "/products", json=rows)
        logger.info("Updated opportunity %s to %s", opp_id, status.value)

    async def _delete(self, path: str, column: str, value: str) -> list[dict[str, Any]]:
        """DELETE matching rows; returns the deleted rows (empty when nothing matched)."""
        response = await self._request(
            "delete_activity",
            "DELETE",
            path,
            params=[(column, f"eq.{value}")],
            headers={"Prefer": "return=representation"},
        )
        return (response.json() or []) if response.content else []

    async def delete_activity(self, activity_id: str) -> None:
        """Delete a task with its linked opportunities, or a standalone opportunity."""
        if await self._delete("/tasks", "id", activity_id):
            await self._delete("/opportunities", OPP_TASK_ID, activity_id)
            logger.info("Deleted task %s", activity_id)
            return
        if await self._delete("/opportunities", "id", activity_id):
            logger.info("Deleted opportunity %s", activity_id)
            return
        raise StoreError(f"Activity not found: {activity_id}", status_code=404, operation="delete_activity")

    async def close(self) -> None:
        await self._client.aclose()
