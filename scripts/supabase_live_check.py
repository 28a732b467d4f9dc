#!/usr/bin/env python3
"""Quick live check of the Supabase store: first task page + opportunity set.

Run:
  SALES_FUNNEL_STORE_BACKEND=supabase SALES_FUNNEL_SUPABASE_URL=... SALES_FUNNEL_SUPABASE_KEY=... \
    poetry run python scripts/supabase_live_check.py            # no filters
  poetry run python scripts/supabase_live_check.py Campinas     # one branch
"""

import asyncio
import sys

from sales_funnel.config import EngineSettings
from sales_funnel.dashboard import SalesDashboard
from sales_funnel.models.filters import SalesFilters
from sales_funnel.store import build_store
from sales_funnel.valuation import format_currency


async def run(branch: str | None) -> None:
    settings = EngineSettings.from_env()
    dashboard = SalesDashboard(build_store(settings), settings)
    try:
        print(f"Loading from {settings.store_backend} (branch={branch or 'all'})...")
        snapshot = await dashboard.load(SalesFilters(branch=branch))
    finally:
        await dashboard.close()

    exact = "" if snapshot.total_is_exact else "+"
    print(f"Got {len(snapshot.activities)} activities of {snapshot.total_count}{exact}")
    for i, a in enumerate(snapshot.activities[:5], 1):
        print(f"  {i}. [{a.source.value}] {a.client} / {a.branch} (id={a.id})")
    metrics = snapshot.metrics
    print(f"Closed {format_currency(metrics.total_closed_value, settings.currency_symbol)}, skipped {metrics.skipped}")


def main() -> None:
    branch = sys.argv[1] if len(sys.argv) > 1 else None
    asyncio.run(run(branch))


if __name__ == "__main__":
    main()
