"""Abstract base class and shared parsing helpers for record normalizers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Optional, Sequence, TypeVar

from sales_funnel.errors import MalformedRecord
from sales_funnel.models.activity import EPOCH, Activity
from sales_funnel.models.raw import RawOpportunity, RawTask

logger = logging.getLogger(__name__)

RawT = TypeVar("RawT", RawTask, RawOpportunity)


@dataclass
class NormalizationResult:
    """Activities that normalized cleanly plus the rows that did not."""

    activities: list[Activity] = field(default_factory=list)
    errors: list[MalformedRecord] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.errors)


class BaseNormalizer(ABC, Generic[RawT]):
    """
    Maps one source row shape to the canonical Activity.
    Subclasses must fill every field with a safe default.
    """

    source: str = ""

    @abstractmethod
    def normalize(self, raw: RawT) -> Activity:
        """Convert one raw row. Raises MalformedRecord when identity is missing."""
        pass

    def normalize_many(self, rows: Sequence[RawT]) -> NormalizationResult:
        """
        Normalize rows without aborting on bad ones.
        Failing rows are logged and reported in the result.
        """
        result = NormalizationResult()
        for raw in rows:
            try:
                result.activities.append(self.normalize(raw))
            except MalformedRecord as e:
                logger.warning("Skipping %s row: %s", self.source, e)
                result.errors.append(e)
        return result


def require_id(data: dict[str, Any], key: str = "id") -> str:
    """Identity field; rows without it cannot be deduplicated."""
    value = data.get(key)
    if value is None or not str(value).strip():
        raise MalformedRecord(f"Row has no {key}", field=key)
    return str(value).strip()


def text_or(value: Any, default: str) -> str:
    """Stripped string, or default when empty."""
    text = str(value).strip() if value is not None else ""
    return text or default


def parse_amount(value: Any) -> float:
    """Monetary amount from number or numeric string; negatives and junk become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        try:
            amount = float(str(value).strip().replace(",", "."))
        except ValueError:
            return 0.0
    if amount != amount or amount < 0:  # NaN or negative
        return 0.0
    return amount


def parse_tristate(value: Any) -> Optional[bool]:
    """True/False preserved exactly; anything else is undefined."""
    if value is True or value is False:
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def parse_timestamp(value: Any, record_id: str, field_name: str) -> datetime:
    """
    Parse an ISO timestamp from the store. Missing -> epoch; unparseable -> MalformedRecord.
    Naive values are taken as UTC.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return EPOCH
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise MalformedRecord(
                f"Unparseable {field_name}: {value!r}", record_id=record_id, field=field_name
            ) from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def first_present(data: dict[str, Any], keys: Sequence[str]) -> Any:
    """Value of the first key present and not None."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None
