"""Unit tests for the value calculator."""

import math

from sales_funnel.models.activity import Activity, LineItem, SalesOutcome, SalesStatus
from sales_funnel.valuation import (
    calculate_values,
    conversion_rate,
    format_conversion,
    format_currency,
    line_item_amount,
    products_selected,
    products_total,
)


def _activity(**kwargs) -> Activity:
    return Activity(id="a-1", **kwargs)


ITEMS = [
    LineItem(name="Semente", selected=True, quantity=2, unit_price=100),
    LineItem(name="Adubo", selected=False, quantity=1, unit_price=50),
    LineItem(name="Brinde", selected=True, quantity=0, unit_price=999),
]


class TestLineItems:
    """Tests for line item sums."""

    def test_amount_is_price_times_quantity(self) -> None:
        """Positive quantity multiplies the unit price."""
        assert line_item_amount(ITEMS[0]) == 200

    def test_zero_quantity_contributes_nothing(self) -> None:
        """Missing or zero quantity contributes 0."""
        assert line_item_amount(ITEMS[2]) == 0

    def test_fractional_quantity_counts_as_one(self) -> None:
        """Quantities between 0 and 1 are rounded up to one unit."""
        assert line_item_amount(LineItem(quantity=0.5, unit_price=40)) == 40

    def test_total_includes_unselected(self) -> None:
        """Potential sums every item."""
        assert products_total(ITEMS) == 250

    def test_selected_ignores_unselected(self) -> None:
        """Closed sums only selected items."""
        assert products_selected(ITEMS) == 200


class TestCalculateValues:
    """Tests for calculate_values."""

    def test_stored_total_wins(self) -> None:
        """Stored total_value > 0 is the potential even when items exist."""
        values = calculate_values(_activity(total_value=900, line_items=ITEMS))
        assert values.potential == 900
        assert values.products_total == 250

    def test_items_used_when_no_stored_total(self) -> None:
        """Zero total_value falls back to the line-item total."""
        assert calculate_values(_activity(line_items=ITEMS)).potential == 250

    def test_won_closes_potential(self) -> None:
        """Won activities close their whole potential."""
        activity = _activity(
            is_prospect=True, sales_confirmed=True, sales_outcome=SalesOutcome.WON, total_value=1000
        )
        values = calculate_values(activity)
        assert values.closed == 1000

    def test_partial_prefers_partial_value(self) -> None:
        """partial_value > 0 takes precedence over selected items."""
        activity = _activity(
            sales_confirmed=True,
            sales_outcome=SalesOutcome.PARTIAL,
            partial_value=120,
            line_items=ITEMS,
        )
        values = calculate_values(activity)
        assert values.closed == 120
        assert values.partial_selected == 200

    def test_partial_falls_back_to_selected_items(self) -> None:
        """Without partial_value the selected items are closed."""
        activity = _activity(sales_confirmed=True, sales_outcome=SalesOutcome.PARTIAL, line_items=ITEMS)
        assert calculate_values(activity).closed == 200

    def test_partial_value_ignored_when_not_partial(self) -> None:
        """partial_value is only read for partial outcomes."""
        activity = _activity(is_prospect=True, partial_value=300, total_value=1000)
        assert calculate_values(activity).closed == 0

    def test_lost_and_prospect_close_nothing(self) -> None:
        """Lost and prospect have closed 0."""
        lost = _activity(sales_outcome=SalesOutcome.LOST, total_value=500)
        assert calculate_values(lost).closed == 0
        assert calculate_values(lost, SalesStatus.PROSPECT).closed == 0

    def test_selecting_items_never_lowers_values(self) -> None:
        """Selecting one more item keeps potential and never lowers closed."""
        base = _activity(sales_confirmed=True, sales_outcome=SalesOutcome.PARTIAL, line_items=ITEMS)
        more = base.model_copy(
            update={"line_items": [ITEMS[0], ITEMS[1].model_copy(update={"selected": True}), ITEMS[2]]}
        )
        before, after = calculate_values(base), calculate_values(more)
        assert after.potential == before.potential
        assert after.closed >= before.closed


class TestConversion:
    """Tests for conversion_rate and formatting."""

    def test_zero_potential_is_zero(self) -> None:
        """No division by zero, no NaN."""
        assert conversion_rate(100, 0) == 0.0
        assert not math.isnan(conversion_rate(0, 0))

    def test_rate_is_percentage(self) -> None:
        """closed / potential * 100."""
        assert conversion_rate(1200, 1500) == 80.0

    def test_format_conversion(self) -> None:
        """One decimal, or a dash when undefined."""
        assert format_conversion(1200, 1500) == "80.0%"
        assert format_conversion(10, 0) == "-"

    def test_format_currency(self) -> None:
        """pt-BR separators, rounded only for display."""
        assert format_currency(1234.567) == "R$ 1.234,57"
        assert format_currency(0.1 + 0.2) == "R$ 0,30"
        assert format_currency(50, symbol="US$") == "US$ 50,00"
