"""Raw store rows before normalization."""

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class RawTask(BaseModel):
    """
    Task row as returned by the store (visit, call or checklist).
    Field names follow the store columns, e.g. task_type, filial, sales_value.
    """

    model_config = ConfigDict(extra="allow")

    kind: Literal["task"] = "task"
    data: dict[str, Any] = Field(default_factory=dict)


class RawOpportunity(BaseModel):
    """
    Standalone opportunity row as returned by the store.
    Carries a status label ("Venda Total", ...) and an optional task_id link.
    """

    model_config = ConfigDict(extra="allow")

    kind: Literal["opportunity"] = "opportunity"
    data: dict[str, Any] = Field(default_factory=dict)


RawRecord = Union[RawTask, RawOpportunity]
