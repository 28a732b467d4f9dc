"""Main CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from sales_funnel.config import EngineSettings
from sales_funnel.dashboard import SalesDashboard
from sales_funnel.errors import EngineError
from sales_funnel.funnel import FunnelMetrics
from sales_funnel.models.filters import SalesFilters
from sales_funnel.valuation import format_conversion, format_currency


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--period", type=int, default=None, help="Only activities from the last N days")
    parser.add_argument("--consultant", default=None, help="Consultant (created_by) id, or 'all'")
    parser.add_argument("--branch", default=None, help="Branch (filial), or 'all'")
    parser.add_argument(
        "--activity",
        default=None,
        choices=["visit", "call", "checklist", "all"],
        help="Activity kind",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: SALES_FUNNEL_* environment variables)",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help='Read rows from JSON file {"tasks": [...], "opportunities": [...]} instead of the store',
    )
    parser.add_argument("--output", type=Path, default=None, help="Write JSON to file (default: stdout)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")


def main(argv: Optional[list[str]] = None) -> None:
    """Parse args and dispatch to subcommands."""
    parser = argparse.ArgumentParser(prog="sales-funnel", description="Field sales funnel dashboard engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # funnel
    funnel_parser = subparsers.add_parser("funnel", help="Print funnel metrics")
    _add_common(funnel_parser)
    funnel_parser.add_argument(
        "--summary",
        action="store_true",
        help="Human-readable totals instead of JSON",
    )

    # activities
    activities_parser = subparsers.add_parser("activities", help="List reconciled activities")
    _add_common(activities_parser)
    activities_parser.add_argument("--all", action="store_true", help="Load every page")

    # clients
    clients_parser = subparsers.add_parser("clients", help="Client rollup")
    _add_common(clients_parser)
    clients_parser.add_argument("--all", action="store_true", help="Load every page")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    filters = _filters(args)
    dashboard = _build_dashboard(args)
    try:
        if args.command == "funnel":
            asyncio.run(_run_funnel(args, dashboard, filters))
        elif args.command == "activities":
            asyncio.run(_run_activities(args, dashboard, filters))
        elif args.command == "clients":
            asyncio.run(_run_clients(args, dashboard, filters))
        else:
            parser.print_help()
    except EngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


def _filters(args: argparse.Namespace) -> SalesFilters:
    try:
        return SalesFilters(
            period_days=args.period,
            consultant_id=args.consultant,
            branch=args.branch,
            activity_kind=args.activity,
        )
    except ValueError as e:
        raise SystemExit(f"Invalid filters: {e}")


def _settings(args: argparse.Namespace) -> EngineSettings:
    if args.config is not None:
        return EngineSettings.from_yaml(args.config)
    return EngineSettings.from_env()


def _build_dashboard(args: argparse.Namespace) -> SalesDashboard:
    """Dashboard over the --input fixture, or over the configured store."""
    from sales_funnel.store import InMemoryStore, PendingMutationQueue, build_store

    settings = _settings(args)
    if args.input is not None:
        try:
            data = json.loads(args.input.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise SystemExit(f"Cannot read {args.input}: {e}")
        store = InMemoryStore(tasks=data.get("tasks", []), opportunities=data.get("opportunities", []))
    else:
        store = build_store(settings)
    queue = PendingMutationQueue(settings.queue_path) if settings.queue_path else None
    return SalesDashboard(store, settings, queue=queue)


def _emit(args: argparse.Namespace, payload, count: int, label: str) -> None:
    output = json.dumps(payload, indent=2, default=str)
    if args.output:
        args.output.write_text(output)
        print(f"Wrote {count} {label} to {args.output}")
    else:
        print(output)


def _print_summary(metrics: FunnelMetrics, symbol: str) -> None:
    c = metrics.contacts
    print(f"Contacts: {c.total} (visits {c.visit.count}, calls {c.call.count}, checklists {c.checklist.count})")
    p = metrics.prospecting
    print(f"Prospecting: {p.open.count} open, {p.won.count} won, {p.lost.count} lost")
    print(f"Potential: {format_currency(metrics.total_potential_value, symbol)}")
    print(f"Closed: {format_currency(metrics.total_closed_value, symbol)}")
    print(f"Conversion: {format_conversion(metrics.total_closed_value, metrics.total_potential_value)}")
    if metrics.is_partial:
        print(f"Some data may be incomplete ({metrics.skipped} records skipped)")


async def _run_funnel(args: argparse.Namespace, dashboard: SalesDashboard, filters: SalesFilters) -> None:
    """Run funnel command."""
    try:
        metrics = await dashboard.funnel_metrics(filters)
    finally:
        await dashboard.close()
    if args.summary:
        _print_summary(metrics, dashboard.settings.currency_symbol)
        return
    _emit(args, metrics.model_dump(mode="json"), metrics.activity_count, "activities summarized")


async def _run_activities(args: argparse.Namespace, dashboard: SalesDashboard, filters: SalesFilters) -> None:
    """Run activities command."""
    dashboard.set_filters(filters)
    view = dashboard.activity_view
    try:
        if args.all:
            await view.load_all()
        else:
            await view.fetch_next_page()
    finally:
        await dashboard.close()
    payload = {
        "total_count": view.total_count,
        "total_is_exact": view.total_is_exact,
        "has_more": view.has_more,
        "skipped": view.skipped,
        "activities": [a.model_dump(mode="json") for a in view.items],
    }
    _emit(args, payload, len(view.items), "activities")


async def _run_clients(args: argparse.Namespace, dashboard: SalesDashboard, filters: SalesFilters) -> None:
    """Run clients command."""
    dashboard.set_filters(filters)
    view = dashboard.client_view
    try:
        if args.all:
            await view.load_all()
        else:
            await view.fetch_next_page()
    finally:
        await dashboard.close()
    clients = view.items
    _emit(args, [c.model_dump(mode="json") for c in clients], len(clients), "clients")


if __name__ == "__main__":
    main()
