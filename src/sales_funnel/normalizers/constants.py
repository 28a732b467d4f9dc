"""Store column names and fixed label tables."""

from sales_funnel.models.activity import ActivityKind, SalesOutcome, SalesStatus

# Task columns
TASK_ID = "id"
TASK_CLIENT = "client"
TASK_RESPONSIBLE = "responsible"
TASK_BRANCH = "filial"
TASK_TYPE = "task_type"
TASK_CREATED_BY = "created_by"
TASK_IS_PROSPECT = "is_prospect"
TASK_SALES_CONFIRMED = "sales_confirmed"
TASK_SALES_TYPE = "sales_type"
TASK_SALES_VALUE = "sales_value"
TASK_PARTIAL_VALUE = "partial_sales_value"
TASK_PRODUCTS = ("task_products", "products")

# Opportunity columns
OPP_ID = "id"
OPP_TASK_ID = "task_id"
OPP_CLIENT = "cliente_nome"
OPP_BRANCH = "filial"
OPP_STATUS = "status"
OPP_TOTAL_VALUE = "valor_total_oportunidade"
OPP_CLOSED_VALUE = "valor_venda_fechada"
OPP_CREATED_AT = ("data_criacao", "created_at")
OPP_ITEMS = ("opportunity_items", "items")

# Shared
CREATED_AT = "created_at"
UPDATED_AT = "updated_at"

TASK_TYPE_TO_KIND: dict[str, ActivityKind] = {
    "prospection": ActivityKind.VISIT,
    "checklist": ActivityKind.CHECKLIST,
    "ligacao": ActivityKind.CALL,
}
KIND_TO_TASK_TYPE: dict[ActivityKind, str] = {v: k for k, v in TASK_TYPE_TO_KIND.items()}

SALES_TYPE_TO_OUTCOME: dict[str, SalesOutcome] = {
    "ganho": SalesOutcome.WON,
    "parcial": SalesOutcome.PARTIAL,
    "perdido": SalesOutcome.LOST,
}
OUTCOME_TO_SALES_TYPE: dict[SalesOutcome, str] = {v: k for k, v in SALES_TYPE_TO_OUTCOME.items()}

# Opportunity status label -> (is_prospect, sales_confirmed, sales_outcome)
STATUS_PROSPECT = "Prospect"
STATUS_WON = "Venda Total"
STATUS_PARTIAL = "Venda Parcial"
STATUS_LOST = "Venda Perdida"

STATUS_LABELS: dict[str, tuple[bool, bool | None, SalesOutcome | None]] = {
    STATUS_PROSPECT: (True, None, None),
    STATUS_WON: (True, True, SalesOutcome.WON),
    STATUS_PARTIAL: (True, True, SalesOutcome.PARTIAL),
    STATUS_LOST: (True, False, SalesOutcome.LOST),
    "Perdido": (True, False, SalesOutcome.LOST),  # legacy label
}

# Reverse mapping used when writing a status back to the store
SALES_STATUS_TO_LABEL: dict[SalesStatus, str] = {
    SalesStatus.PROSPECT: STATUS_PROSPECT,
    SalesStatus.WON: STATUS_WON,
    SalesStatus.PARTIAL: STATUS_PARTIAL,
    SalesStatus.LOST: STATUS_LOST,
}
