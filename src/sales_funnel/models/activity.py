"""Canonical activity model produced by all record normalizers."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

NO_CLIENT = "no client"
NO_RESPONSIBLE = "no responsible"
NO_BRANCH = "no branch"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ActivityKind(str, Enum):
    """Contact type recorded by a consultant."""

    VISIT = "visit"
    CALL = "call"
    CHECKLIST = "checklist"


class SalesOutcome(str, Enum):
    """Outcome of a confirmed (or lost) opportunity."""

    WON = "won"
    PARTIAL = "partial"
    LOST = "lost"


class SalesStatus(str, Enum):
    """Derived sales state; never stored on the activity."""

    PROSPECT = "prospect"
    WON = "won"
    PARTIAL = "partial"
    LOST = "lost"


class ActivitySource(str, Enum):
    """Which source shape an activity was normalized from."""

    TASK = "task"
    OPPORTUNITY = "opportunity"


class LineItem(BaseModel):
    """Product line attached to an activity."""

    name: str = ""
    selected: bool = False
    quantity: float = 0
    unit_price: float = 0


class Activity(BaseModel):
    """Canonical record representing one client opportunity touchpoint."""

    id: str = Field(..., description="Task id, or opportunity id for standalone opportunities")
    opportunity_id: Optional[str] = None
    source: ActivitySource = ActivitySource.TASK

    client: str = NO_CLIENT
    responsible: str = NO_RESPONSIBLE
    branch: str = NO_BRANCH

    activity_kind: ActivityKind = ActivityKind.VISIT
    is_prospect: bool = False
    sales_confirmed: Optional[bool] = None
    sales_outcome: Optional[SalesOutcome] = None

    total_value: float = Field(default=0.0, ge=0)
    partial_value: float = Field(default=0.0, ge=0)

    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH

    line_items: list[LineItem] = Field(default_factory=list)
