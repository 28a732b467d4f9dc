"""Value calculator: potential, closed and partial values for one activity."""

from dataclasses import dataclass
from typing import Iterable

from sales_funnel.classification import classify_activity
from sales_funnel.models.activity import Activity, LineItem, SalesStatus


@dataclass(frozen=True)
class ActivityValues:
    """Monetary values derived for one activity. Unrounded."""

    potential: float
    closed: float
    partial_selected: float
    products_total: float


def line_item_amount(item: LineItem) -> float:
    """unit_price * max(quantity, 1); missing or zero quantity contributes 0."""
    if not item.quantity or item.quantity <= 0:
        return 0.0
    return max(item.unit_price, 0.0) * max(item.quantity, 1)


def products_total(items: Iterable[LineItem]) -> float:
    """Sum over all items, selected or not."""
    return sum(line_item_amount(i) for i in items)


def products_selected(items: Iterable[LineItem]) -> float:
    """Sum over selected items only."""
    return sum(line_item_amount(i) for i in items if i.selected)


def calculate_values(activity: Activity, status: SalesStatus | None = None) -> ActivityValues:
    """
    Compute values with "stored value wins when present and > 0":
    potential = total_value, else the line-item total;
    closed = potential when won, partial_value (else selected items) when partial, 0 otherwise.
    partial_value is only read for partial outcomes.
    """
    status = status or classify_activity(activity)
    all_items = products_total(activity.line_items)
    selected = products_selected(activity.line_items)

    potential = activity.total_value if activity.total_value > 0 else all_items

    if status is SalesStatus.WON:
        closed = potential
    elif status is SalesStatus.PARTIAL:
        closed = activity.partial_value if activity.partial_value > 0 else selected
    else:
        closed = 0.0

    return ActivityValues(
        potential=potential,
        closed=closed,
        partial_selected=selected,
        products_total=all_items,
    )


def conversion_rate(closed: float, potential: float) -> float:
    """closed / potential * 100, or 0.0 when potential is not positive."""
    if potential <= 0:
        return 0.0
    return closed / potential * 100


def format_conversion(closed: float, potential: float) -> str:
    """Display form of the conversion rate; "-" when undefined."""
    if potential <= 0:
        return "-"
    return f"{conversion_rate(closed, potential):.1f}%"


def format_currency(value: float, symbol: str = "R$") -> str:
    """Round to 2 decimals and format pt-BR style, e.g. R$ 1.234,56."""
    text = f"{round(value, 2):,.2f}"
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{symbol} {text}"
