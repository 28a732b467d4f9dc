"""Normalizer for standalone opportunity rows."""

import logging
from typing import Any, Optional

from sales_funnel.models.activity import (
    NO_BRANCH,
    NO_CLIENT,
    NO_RESPONSIBLE,
    Activity,
    ActivityKind,
    ActivitySource,
    LineItem,
)
from sales_funnel.models.raw import RawOpportunity

from .base import BaseNormalizer, first_present, parse_amount, parse_timestamp, require_id, text_or
from .constants import (
    OPP_BRANCH,
    OPP_CLIENT,
    OPP_CLOSED_VALUE,
    OPP_CREATED_AT,
    OPP_ITEMS,
    OPP_STATUS,
    OPP_TASK_ID,
    OPP_TOTAL_VALUE,
    STATUS_LABELS,
    STATUS_PROSPECT,
    UPDATED_AT,
)

logger = logging.getLogger(__name__)


def linked_task_id(raw: RawOpportunity) -> Optional[str]:
    """Task this opportunity belongs to, or None for a truly standalone one."""
    value = raw.data.get(OPP_TASK_ID)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def parse_items(items: Any) -> list[LineItem]:
    """
    Opportunity item rows: {produto, preco_unit, qtd_ofertada, qtd_vendida}.
    An item is part of the closed sale when qtd_vendida > 0.
    """
    if not isinstance(items, list):
        return []
    parsed: list[LineItem] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        parsed.append(
            LineItem(
                name=text_or(item.get("produto", item.get("name")), ""),
                selected=parse_amount(item.get("qtd_vendida")) > 0,
                quantity=parse_amount(item.get("qtd_ofertada", item.get("quantity"))),
                unit_price=parse_amount(item.get("preco_unit", item.get("unit_price"))),
            )
        )
    return parsed


class OpportunityNormalizer(BaseNormalizer[RawOpportunity]):
    """Maps opportunity rows to Activity via the fixed status label table."""

    source = "opportunity"

    def normalize(self, raw: RawOpportunity) -> Activity:
        d = raw.data
        opp_id = require_id(d)

        label = text_or(d.get(OPP_STATUS), STATUS_PROSPECT)
        state = STATUS_LABELS.get(label)
        if state is None:
            logger.warning("Unknown opportunity status %r on %s; treating as prospect", label, opp_id)
            state = STATUS_LABELS[STATUS_PROSPECT]
        is_prospect, confirmed, outcome = state

        created_at = parse_timestamp(first_present(d, OPP_CREATED_AT), opp_id, "created_at")
        updated_at = parse_timestamp(d.get(UPDATED_AT), opp_id, UPDATED_AT)
        if updated_at < created_at:
            updated_at = created_at

        return Activity(
            id=opp_id,
            opportunity_id=opp_id,
            source=ActivitySource.OPPORTUNITY,
            client=text_or(d.get(OPP_CLIENT), NO_CLIENT),
            responsible=NO_RESPONSIBLE,
            branch=text_or(d.get(OPP_BRANCH), NO_BRANCH),
            activity_kind=ActivityKind.VISIT,
            is_prospect=is_prospect,
            sales_confirmed=confirmed,
            sales_outcome=outcome,
            total_value=parse_amount(d.get(OPP_TOTAL_VALUE)),
            partial_value=parse_amount(d.get(OPP_CLOSED_VALUE)),
            created_at=created_at,
            updated_at=updated_at,
            line_items=parse_items(first_present(d, OPP_ITEMS)),
        )
