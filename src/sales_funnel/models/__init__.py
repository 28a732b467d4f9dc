"""Data models for activities, source rows and filters."""

from sales_funnel.models.activity import (
    Activity,
    ActivityKind,
    ActivitySource,
    LineItem,
    SalesOutcome,
    SalesStatus,
)
from sales_funnel.models.filters import Page, SalesFilters
from sales_funnel.models.raw import RawOpportunity, RawRecord, RawTask

__all__ = [
    "Activity",
    "ActivityKind",
    "ActivitySource",
    "LineItem",
    "Page",
    "RawOpportunity",
    "RawRecord",
    "RawTask",
    "SalesFilters",
    "SalesOutcome",
    "SalesStatus",
]
