"""Client rollup: one row per client from a reconciled activity collection."""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel

from sales_funnel.models.activity import Activity, ActivityKind, ActivitySource
from sales_funnel.valuation import calculate_values


class ClientRollup(BaseModel):
    """Per-client summary for the client funnel view."""

    client: str
    branch: str
    responsible: str
    activity_count: int = 0
    last_visit_at: Optional[datetime] = None
    last_opportunity_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    potential_value: float = 0.0
    closed_value: float = 0.0


def _later(current: Optional[datetime], candidate: datetime) -> datetime:
    return candidate if current is None or candidate > current else current


def rollup_clients(activities: Iterable[Activity]) -> list[ClientRollup]:
    """Group by client in a single pass; most recently active clients first."""
    clients: dict[str, ClientRollup] = {}
    for activity in activities:
        row = clients.get(activity.client)
        if row is None:
            row = ClientRollup(
                client=activity.client,
                branch=activity.branch,
                responsible=activity.responsible,
            )
            clients[activity.client] = row

        values = calculate_values(activity)
        row.activity_count += 1
        row.potential_value += values.potential
        row.closed_value += values.closed
        row.last_activity_at = _later(row.last_activity_at, activity.created_at)

        is_task = activity.source is ActivitySource.TASK
        if is_task and activity.activity_kind is ActivityKind.VISIT:
            row.last_visit_at = _later(row.last_visit_at, activity.created_at)
        if activity.is_prospect or not is_task:
            row.last_opportunity_at = _later(row.last_opportunity_at, activity.created_at)

    return sorted(
        clients.values(),
        key=lambda r: (r.last_activity_at is not None, r.last_activity_at),
        reverse=True,
    )
