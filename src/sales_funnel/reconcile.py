"""Reconciler: merges task-derived and opportunity-derived records without double counting."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sales_funnel.errors import MalformedRecord, ReconciliationConflict
from sales_funnel.models.activity import Activity
from sales_funnel.models.raw import RawOpportunity
from sales_funnel.normalizers import OpportunityNormalizer, linked_task_id

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Reconciled collection with the bookkeeping needed for counts and diagnostics."""

    activities: list[Activity] = field(default_factory=list)
    dropped: int = 0
    standalone: int = 0
    unlinked: int = 0
    conflicts: list[ReconciliationConflict] = field(default_factory=list)
    errors: list[MalformedRecord] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.errors)


def reconcile(
    task_activities: Sequence[Activity],
    opportunities: Sequence[RawOpportunity],
    normalizer: Optional[OpportunityNormalizer] = None,
    *,
    complete: bool = True,
) -> ReconciliationResult:
    """
    Task activities ++ opportunities not claimed by any loaded task.
    A claimed opportunity is dropped and its id kept as the task's opportunity_id.
    An opportunity pointing at a task outside the loaded set is a conflict: logged, kept.

    With complete=False more task pages are still to come, so conflicts are
    expected and logged at DEBUG.
    """
    normalizer = normalizer or OpportunityNormalizer()
    result = ReconciliationResult()
    conflict_level = logging.WARNING if complete else logging.DEBUG

    by_task_id: dict[str, Activity] = {a.id: a for a in task_activities}
    claimed: dict[str, str] = {}
    standalone: list[RawOpportunity] = []
    conflict_ids: set[str] = set()

    for raw in opportunities:
        task_id = linked_task_id(raw)
        if task_id is not None and task_id in by_task_id:
            result.dropped += 1
            opp_id = raw.data.get("id")
            if opp_id is not None and task_id not in claimed:
                claimed[task_id] = str(opp_id)
            continue
        if task_id is not None:
            conflict = ReconciliationConflict(str(raw.data.get("id", "?")), task_id)
            logger.log(conflict_level, "%s; keeping as standalone", conflict)
            result.conflicts.append(conflict)
            conflict_ids.add(conflict.opportunity_id.strip())
        standalone.append(raw)

    seen: set[str] = set()
    for activity in task_activities:
        if activity.id in seen:
            logger.warning("Duplicate task id %s in loaded pages; keeping first", activity.id)
            continue
        seen.add(activity.id)
        if activity.id in claimed and activity.opportunity_id is None:
            activity = activity.model_copy(update={"opportunity_id": claimed[activity.id]})
        result.activities.append(activity)

    normalized = normalizer.normalize_many(standalone)
    result.errors.extend(normalized.errors)
    for activity in normalized.activities:
        if activity.id in seen:
            logger.warning("Standalone opportunity %s collides with an existing id; skipped", activity.id)
            continue
        seen.add(activity.id)
        result.activities.append(activity)
        result.standalone += 1
        if activity.id not in conflict_ids:
            result.unlinked += 1

    return result


class ReconciliationJoin:
    """
    Two-slot join: reconciles only once both the task slot and the opportunity slot
    are filled for the current generation, whichever arrives first.
    """

    def __init__(self, normalizer: Optional[OpportunityNormalizer] = None):
        self._normalizer = normalizer or OpportunityNormalizer()
        self._generation = 0
        self._tasks: Optional[list[Activity]] = None
        self._tasks_complete = True
        self._opportunities: Optional[list[RawOpportunity]] = None
        self._result: Optional[ReconciliationResult] = None

    @property
    def generation(self) -> int:
        return self._generation

    def reset(self, generation: int) -> None:
        """Start a new generation; both slots become empty."""
        self._generation = generation
        self._tasks = None
        self._tasks_complete = True
        self._opportunities = None
        self._result = None

    def set_tasks(self, generation: int, activities: Sequence[Activity], complete: bool = True) -> bool:
        """
        Fill (or refresh) the task slot. complete=False marks a partial task set.
        Returns False when the generation is stale.
        """
        if generation != self._generation:
            logger.debug("Discarding task slot for stale generation %d", generation)
            return False
        self._tasks = list(activities)
        self._tasks_complete = complete
        self._result = None
        return True

    def set_opportunities(self, generation: int, rows: Sequence[RawOpportunity]) -> bool:
        """Fill (or refresh) the opportunity slot. Returns False when the generation is stale."""
        if generation != self._generation:
            logger.debug("Discarding opportunity slot for stale generation %d", generation)
            return False
        self._opportunities = list(rows)
        self._result = None
        return True

    @property
    def has_tasks(self) -> bool:
        return self._tasks is not None

    @property
    def has_opportunities(self) -> bool:
        return self._opportunities is not None

    @property
    def ready(self) -> bool:
        return self._tasks is not None and self._opportunities is not None

    def result(self) -> Optional[ReconciliationResult]:
        """Reconciled collection, or None until both slots are filled."""
        if not self.ready:
            return None
        if self._result is None:
            self._result = reconcile(
                self._tasks or [], self._opportunities or [], self._normalizer, complete=self._tasks_complete
            )
        return self._result
