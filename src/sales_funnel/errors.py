"""
Typed errors surfaced by the engine.

Hierarchy:
    EngineError
    ├── StoreError
    │   └── StoreUnavailable
    ├── MalformedRecord
    └── ReconciliationConflict
"""

from typing import Optional


class EngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, code: str = "ENGINE_ERROR", details: Optional[dict] = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


class StoreError(EngineError):
    """The store rejected a request."""

    def __init__(
        self,
        message: str,
        code: str = "STORE_ERROR",
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
    ):
        self.status_code = status_code
        self.operation = operation
        super().__init__(
            message,
            code=code,
            details={"status_code": status_code, "operation": operation},
        )


class StoreUnavailable(StoreError):
    """Network failure, timeout or server-side error; safe to retry."""

    def __init__(self, operation: str, cause: Optional[Exception] = None, status_code: Optional[int] = None):
        msg = f"Store unavailable during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg, code="STORE_UNAVAILABLE", status_code=status_code, operation=operation)


class MalformedRecord(EngineError):
    """A row could not be normalized (missing identity or unparseable field)."""

    def __init__(self, message: str, record_id: Optional[str] = None, field: Optional[str] = None):
        self.record_id = record_id
        self.field = field
        super().__init__(
            message,
            code="MALFORMED_RECORD",
            details={"record_id": record_id, "field": field},
        )


class ReconciliationConflict(EngineError):
    """
    A standalone opportunity references a task that is not in the loaded set.
    Recorded by the reconciler, not raised: the opportunity is kept as standalone.
    """

    def __init__(self, opportunity_id: str, task_id: str):
        self.opportunity_id = opportunity_id
        self.task_id = task_id
        super().__init__(
            f"Opportunity {opportunity_id} references task {task_id} not in the loaded task set",
            code="RECONCILIATION_CONFLICT",
            details={"opportunity_id": opportunity_id, "task_id": task_id},
        )
