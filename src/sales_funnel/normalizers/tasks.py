"""Normalizer for task rows (visits, calls and workshop checklists)."""

from typing import Any

from sales_funnel.models.activity import (
    NO_BRANCH,
    NO_CLIENT,
    NO_RESPONSIBLE,
    Activity,
    ActivityKind,
    ActivitySource,
    LineItem,
    SalesOutcome,
)
from sales_funnel.models.raw import RawTask

from .base import (
    BaseNormalizer,
    first_present,
    parse_amount,
    parse_timestamp,
    parse_tristate,
    require_id,
    text_or,
)
from .constants import (
    CREATED_AT,
    SALES_TYPE_TO_OUTCOME,
    TASK_BRANCH,
    TASK_CLIENT,
    TASK_IS_PROSPECT,
    TASK_PARTIAL_VALUE,
    TASK_PRODUCTS,
    TASK_RESPONSIBLE,
    TASK_SALES_CONFIRMED,
    TASK_SALES_TYPE,
    TASK_SALES_VALUE,
    TASK_TYPE,
    TASK_TYPE_TO_KIND,
    UPDATED_AT,
)


def task_kind(task_type: Any) -> ActivityKind:
    """Closed mapping from task_type; unknown types are visits."""
    return TASK_TYPE_TO_KIND.get(str(task_type or "").strip().lower(), ActivityKind.VISIT)


def sales_outcome(sales_type: Any) -> SalesOutcome | None:
    """ganho/parcial/perdido; "prospect" and anything else mean no outcome yet."""
    return SALES_TYPE_TO_OUTCOME.get(str(sales_type or "").strip().lower())


def parse_products(products: Any) -> list[LineItem]:
    """Task product rows: {name, selected, quantity, price}."""
    if not isinstance(products, list):
        return []
    items: list[LineItem] = []
    for p in products:
        if not isinstance(p, dict):
            continue
        items.append(
            LineItem(
                name=text_or(p.get("name"), ""),
                selected=bool(p.get("selected")),
                quantity=parse_amount(p.get("quantity")),
                unit_price=parse_amount(p.get("price", p.get("unit_price"))),
            )
        )
    return items


class TaskNormalizer(BaseNormalizer[RawTask]):
    """Maps task rows 1:1 to Activity with light renaming."""

    source = "task"

    def normalize(self, raw: RawTask) -> Activity:
        d = raw.data
        task_id = require_id(d)
        created_at = parse_timestamp(d.get(CREATED_AT), task_id, CREATED_AT)
        updated_at = parse_timestamp(d.get(UPDATED_AT), task_id, UPDATED_AT)
        if updated_at < created_at:
            updated_at = created_at

        return Activity(
            id=task_id,
            opportunity_id=None,
            source=ActivitySource.TASK,
            client=text_or(d.get(TASK_CLIENT), NO_CLIENT),
            responsible=text_or(d.get(TASK_RESPONSIBLE), NO_RESPONSIBLE),
            branch=text_or(d.get(TASK_BRANCH), NO_BRANCH),
            activity_kind=task_kind(d.get(TASK_TYPE)),
            is_prospect=parse_tristate(d.get(TASK_IS_PROSPECT)) is True,
            sales_confirmed=parse_tristate(d.get(TASK_SALES_CONFIRMED)),
            sales_outcome=sales_outcome(d.get(TASK_SALES_TYPE)),
            total_value=parse_amount(d.get(TASK_SALES_VALUE)),
            partial_value=parse_amount(d.get(TASK_PARTIAL_VALUE)),
            created_at=created_at,
            updated_at=updated_at,
            line_items=parse_products(first_present(d, TASK_PRODUCTS)),
        )
