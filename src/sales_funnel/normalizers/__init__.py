"""Record normalizers for the two store row shapes."""

from sales_funnel.normalizers.base import BaseNormalizer, NormalizationResult
from sales_funnel.normalizers.opportunities import OpportunityNormalizer, linked_task_id
from sales_funnel.normalizers.tasks import TaskNormalizer

__all__ = [
    "BaseNormalizer",
    "NormalizationResult",
    "OpportunityNormalizer",
    "TaskNormalizer",
    "linked_task_id",
]
