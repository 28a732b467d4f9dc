"""Status classifier: maps activity fields to one canonical sales state."""

from typing import Optional, Union

from sales_funnel.models.activity import Activity, SalesOutcome, SalesStatus


def _outcome(value: Union[SalesOutcome, str, None]) -> Optional[SalesOutcome]:
    """Coerce a raw outcome; unknown strings are treated as no outcome."""
    if value is None or isinstance(value, SalesOutcome):
        return value
    try:
        return SalesOutcome(str(value).strip().lower())
    except ValueError:
        return None


def classify(
    is_prospect: Optional[bool],
    sales_confirmed: Optional[bool],
    sales_outcome: Union[SalesOutcome, str, None],
) -> SalesStatus:
    """
    Classify an activity. First match wins:
    confirmed won -> won, confirmed partial -> partial, lost (confirmed or not) -> lost,
    everything else -> prospect. Never raises.
    """
    outcome = _outcome(sales_outcome)
    if sales_confirmed is True and outcome is SalesOutcome.WON:
        return SalesStatus.WON
    if sales_confirmed is True and outcome is SalesOutcome.PARTIAL:
        return SalesStatus.PARTIAL
    if outcome is SalesOutcome.LOST:
        return SalesStatus.LOST
    if is_prospect is True:
        return SalesStatus.PROSPECT
    return SalesStatus.PROSPECT


def classify_activity(activity: Activity) -> SalesStatus:
    """Classify a normalized activity."""
    return classify(activity.is_prospect, activity.sales_confirmed, activity.sales_outcome)
