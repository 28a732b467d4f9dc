"""Funnel reducer: one pass over reconciled activities into dashboard metrics."""

from typing import Iterable, Optional

from pydantic import BaseModel, Field

from sales_funnel.classification import classify_activity
from sales_funnel.models.activity import Activity, ActivityKind, ActivitySource, SalesStatus
from sales_funnel.models.filters import SalesFilters
from sales_funnel.valuation import conversion_rate, calculate_values


class Bucket(BaseModel):
    """Count and value for one funnel cell."""

    count: int = 0
    value: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.value += value


class Breakdown(BaseModel):
    """Per-branch or per-responsible performance."""

    count: int = 0
    potential: float = 0.0
    closed: float = 0.0


class ContactsSection(BaseModel):
    visit: Bucket = Field(default_factory=Bucket)
    call: Bucket = Field(default_factory=Bucket)
    checklist: Bucket = Field(default_factory=Bucket)

    @property
    def total(self) -> int:
        return self.visit.count + self.call.count + self.checklist.count


class ProspectingSection(BaseModel):
    open: Bucket = Field(default_factory=Bucket)
    won: Bucket = Field(default_factory=Bucket)
    lost: Bucket = Field(default_factory=Bucket)


class SalesSection(BaseModel):
    won: Bucket = Field(default_factory=Bucket)
    partial: Bucket = Field(default_factory=Bucket)


class FunnelMetrics(BaseModel):
    """
    Aggregated funnel for a filter set.
    is_partial flags metrics computed from an incomplete or partly malformed input.
    """

    filters: Optional[SalesFilters] = None
    contacts: ContactsSection = Field(default_factory=ContactsSection)
    prospecting: ProspectingSection = Field(default_factory=ProspectingSection)
    sales: SalesSection = Field(default_factory=SalesSection)
    by_branch: dict[str, Breakdown] = Field(default_factory=dict)
    by_responsible: dict[str, Breakdown] = Field(default_factory=dict)
    total_potential_value: float = 0.0
    total_closed_value: float = 0.0
    conversion_rate: float = 0.0
    activity_count: int = 0
    skipped: int = 0
    is_partial: bool = False


def _add_breakdown(table: dict[str, Breakdown], key: str, potential: float, closed: float) -> None:
    row = table.setdefault(key, Breakdown())
    row.count += 1
    row.potential += potential
    row.closed += closed


def reduce_funnel(
    activities: Iterable[Activity],
    filters: Optional[SalesFilters] = None,
    skipped: int = 0,
    complete: bool = True,
) -> FunnelMetrics:
    """Reduce reconciled activities in a single pass."""
    metrics = FunnelMetrics(filters=filters, skipped=skipped)

    for activity in activities:
        status = classify_activity(activity)
        values = calculate_values(activity, status)
        metrics.activity_count += 1

        if activity.source is ActivitySource.TASK:
            if activity.activity_kind is ActivityKind.CALL:
                metrics.contacts.call.add(values.potential)
            elif activity.activity_kind is ActivityKind.CHECKLIST:
                metrics.contacts.checklist.add(values.potential)
            else:
                metrics.contacts.visit.add(values.potential)

        if status is SalesStatus.WON:
            metrics.prospecting.won.add(values.closed)
            metrics.sales.won.add(values.closed)
        elif status is SalesStatus.PARTIAL:
            metrics.sales.partial.add(values.closed)
        elif status is SalesStatus.LOST:
            metrics.prospecting.lost.add(values.potential)
        else:
            metrics.prospecting.open.add(values.potential)

        _add_breakdown(metrics.by_branch, activity.branch, values.potential, values.closed)
        _add_breakdown(metrics.by_responsible, activity.responsible, values.potential, values.closed)
        metrics.total_potential_value += values.potential
        metrics.total_closed_value += values.closed

    metrics.conversion_rate = conversion_rate(metrics.total_closed_value, metrics.total_potential_value)
    metrics.is_partial = skipped > 0 or not complete
    return metrics
