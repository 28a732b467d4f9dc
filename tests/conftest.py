"""Pytest fixtures for sales-funnel tests."""

from typing import Any, Callable

import pytest

from sales_funnel.store import InMemoryStore

RowFactory = Callable[..., dict[str, Any]]


def _task_row(task_id: str = "t-1", **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": task_id,
        "client": "Fazenda Boa Vista",
        "responsible": "Ana Souza",
        "filial": "Campinas",
        "task_type": "prospection",
        "created_by": "u-ana",
        "is_prospect": True,
        "sales_confirmed": None,
        "sales_type": "prospect",
        "sales_value": 0,
        "partial_sales_value": 0,
        "created_at": "2026-10-01T10:00:00Z",
        "updated_at": "2026-10-01T10:00:00Z",
        "products": [],
    }
    row.update(overrides)
    return row


def _opportunity_row(opp_id: str = "o-1", **overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": opp_id,
        "task_id": None,
        "cliente_nome": "Sitio Esperanca",
        "filial": "Campinas",
        "status": "Prospect",
        "valor_total_oportunidade": 0,
        "valor_venda_fechada": 0,
        "data_criacao": "2026-10-02T09:00:00Z",
        "created_at": "2026-10-02T09:00:00Z",
        "updated_at": "2026-10-02T09:00:00Z",
        "opportunity_items": [],
    }
    row.update(overrides)
    return row


@pytest.fixture
def task_row() -> RowFactory:
    """Factory for task rows shaped like the tasks table."""
    return _task_row


@pytest.fixture
def opportunity_row() -> RowFactory:
    """Factory for opportunity rows shaped like the opportunities table."""
    return _opportunity_row


@pytest.fixture
def scenario_rows() -> dict[str, list[dict[str, Any]]]:
    """
    One won visit (1000) with its backing opportunity, two open calls and one
    standalone partial opportunity (total 500, closed 200).
    """
    tasks = [
        _task_row(
            "t-visit",
            sales_confirmed=True,
            sales_type="ganho",
            sales_value=1000,
            created_at="2026-10-03T10:00:00Z",
            updated_at="2026-10-03T10:00:00Z",
        ),
        _task_row(
            "t-call-1",
            task_type="ligacao",
            client="Agropecuaria Sol",
            responsible="Bruno Lima",
            created_by="u-bruno",
            created_at="2026-10-02T10:00:00Z",
            updated_at="2026-10-02T10:00:00Z",
        ),
        _task_row(
            "t-call-2",
            task_type="ligacao",
            client="Granja Norte",
            filial="Ribeirao Preto",
            created_at="2026-10-01T10:00:00Z",
            updated_at="2026-10-01T10:00:00Z",
        ),
    ]
    opportunities = [
        _opportunity_row(
            "o-visit",
            task_id="t-visit",
            cliente_nome="Fazenda Boa Vista",
            status="Venda Total",
            valor_total_oportunidade=1000,
            valor_venda_fechada=1000,
        ),
        _opportunity_row(
            "o-standalone",
            status="Venda Parcial",
            valor_total_oportunidade=500,
            valor_venda_fechada=200,
        ),
    ]
    return {"tasks": tasks, "opportunities": opportunities}


@pytest.fixture
def scenario_store(scenario_rows: dict[str, list[dict[str, Any]]]) -> InMemoryStore:
    """InMemoryStore seeded with the scenario rows."""
    return InMemoryStore(tasks=scenario_rows["tasks"], opportunities=scenario_rows["opportunities"])
