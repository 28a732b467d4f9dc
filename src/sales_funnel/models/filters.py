"""Filter set shared by paginated views, caches and store reads."""

import json
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sales_funnel.models.activity import ActivityKind
from sales_funnel.models.raw import RawOpportunity, RawTask


def _blank_to_none(value: Any) -> Any:
    """The UI sends "all" or "" for an unset filter."""
    if isinstance(value, str) and value.strip().lower() in ("", "all"):
        return None
    return value


class SalesFilters(BaseModel):
    """
    Active filter set for a dashboard view. None means "all".
    Frozen so it can be compared and hashed by value.
    """

    model_config = ConfigDict(frozen=True)

    period_days: Optional[int] = Field(default=None, ge=1)
    consultant_id: Optional[str] = None
    branch: Optional[str] = None
    activity_kind: Optional[ActivityKind] = None

    @field_validator("period_days", "consultant_id", "branch", "activity_kind", mode="before")
    @classmethod
    def _normalize_all(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def cache_key(self) -> str:
        """Stable serialization used as the cache key."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True)

    def cutoff(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Earliest created_at included by the period filter."""
        if self.period_days is None:
            return None
        now = now or datetime.now(timezone.utc)
        return now - timedelta(days=self.period_days)

    def opportunity_scope(self) -> "SalesFilters":
        """Opportunities are only filtered by branch and period."""
        return SalesFilters(period_days=self.period_days, branch=self.branch)


class Page(BaseModel):
    """One range-read from the store."""

    rows: list[Annotated[RawTask | RawOpportunity, Field(discriminator="kind")]] = Field(
        default_factory=list
    )
    total_count: int = 0
