# price_watch/cli/runner.py

"""Headless CLI commands built on the engine and tracking service."""

import asyncio
import json
import logging
import signal
import sys

from rich.console import Console
from rich.table import Table

from price_watch.config.settings import Settings
from price_watch.errors import (
    DatastoreError,
    FetchFailure,
    InvalidProductURL,
    ProductUnavailable,
)
from price_watch.models.cycle_report import CheckStatus, CycleReport
from price_watch.notifiers.email_notifier import EmailNotifier
from price_watch.services.price_check_engine import (
    PriceCheckEngine,
    create_fetcher,
)
from price_watch.services.tracking_service import TrackingService
from price_watch.storage.sqlite_datastore import SqliteDatastore

logger = logging.getLogger("price_watch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_STATUS_STYLES: dict[CheckStatus, str] = {
    CheckStatus.ALERT_SENT: "[bold green]alert sent[/bold green]",
    CheckStatus.ALERT_RECENTLY_NOTIFIED: "[yellow]recently notified[/yellow]",
    CheckStatus.CHECKED: "[cyan]checked[/cyan]",
    CheckStatus.CHECKED_NO_ALERTS: "[dim]no alerts[/dim]",
    CheckStatus.FAILED: "[red]failed[/red]",
    CheckStatus.ERROR: "[bold red]error[/bold red]",
}


def _price(value: float | None) -> str:
    return f"${value:,.2f}" if value is not None else "—"


def _print_report(report: CycleReport) -> None:
    """Render a Rich table of cycle results to stdout."""
    table = Table(
        title=f"Price Check: {report.total_products} products",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("ASIN", style="bold")
    table.add_column("Alert", justify="right", style="dim")
    table.add_column("Status", justify="center")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Target", justify="right")
    table.add_column("Notes", style="dim")

    for r in report.results:
        notes = r.message
        if r.delivered is False:
            notes = notes or "delivery failed"
        table.add_row(
            r.asin,
            str(r.alert_id) if r.alert_id is not None else "—",
            _STATUS_STYLES[r.status],
            _price(r.current_price),
            _price(r.target_price),
            notes,
        )

    Console().print(table)


def _build_engine(
    datastore: SqliteDatastore,
    fetcher_id: str | None,
    item_delay: float | None,
) -> PriceCheckEngine:
    return PriceCheckEngine(
        datastore=datastore,
        fetcher=create_fetcher(fetcher_id),
        notifier=EmailNotifier(),
        item_delay=item_delay,
    )


def _install_cancel_handler(cancel_event: asyncio.Event) -> None:
    """Set *cancel_event* on Ctrl+C instead of killing the cycle mid-write."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unsupported on this platform")


async def run_check(
    fetcher_id: str | None = None,
    item_delay: float | None = None,
    as_json: bool = False,
) -> int:
    """Run one check cycle and return an exit code (0=ok, 1=fatal)."""
    datastore = SqliteDatastore()
    try:
        engine = _build_engine(datastore, fetcher_id, item_delay)
        cancel_event = asyncio.Event()
        _install_cancel_handler(cancel_event)

        _err.print("[bold]Checking prices...[/bold]")
        report = await engine.run_check_cycle(cancel_event)
    finally:
        datastore.close()

    if as_json:
        json.dump(report.to_dict(), sys.stdout, indent=2)
        sys.stdout.write("\n")
    elif report.results:
        _print_report(report)

    if report.error:
        _err.print(f"[red]Cycle aborted: {report.error}[/red]")
        return 1
    if report.total_products == 0:
        _err.print("[yellow]No active products to check.[/yellow]")
    if report.cancelled:
        _err.print("[yellow]Cycle cancelled; remaining products skipped.[/yellow]")

    _err.print(
        f"[green]✓ {report.processed_products} products checked, "
        f"{report.count(CheckStatus.ALERT_SENT)} alerts sent, "
        f"{report.count(CheckStatus.FAILED)} failed, "
        f"{report.count(CheckStatus.ERROR)} errors[/green]"
    )
    return 0


async def run_watch(
    interval: float,
    fetcher_id: str | None = None,
    item_delay: float | None = None,
) -> int:
    """Run check cycles every *interval* seconds until Ctrl+C."""
    datastore = SqliteDatastore()
    engine = _build_engine(datastore, fetcher_id, item_delay)
    cancel_event = asyncio.Event()
    _install_cancel_handler(cancel_event)

    _err.print(
        f"[bold]Watching prices every {interval:.0f}s "
        "(Ctrl+C to stop)[/bold]"
    )
    try:
        while not cancel_event.is_set():
            report = await engine.run_check_cycle(cancel_event)
            if report.results:
                _print_report(report)
            if report.error:
                _err.print(f"[red]Cycle aborted: {report.error}[/red]")
            try:
                await asyncio.wait_for(
                    cancel_event.wait(), timeout=interval,
                )
            except asyncio.TimeoutError:
                pass
    finally:
        datastore.close()

    _err.print("[dim]Watch stopped.[/dim]")
    return 0


def run_add(
    url: str,
    email: str | None,
    target: float | None,
    fetcher_id: str | None = None,
) -> int:
    """Register a product (and optionally an alert)."""
    datastore = SqliteDatastore()
    try:
        service = TrackingService(datastore, create_fetcher(fetcher_id))
        result = service.add_product(url, email, target)
    except (InvalidProductURL, ProductUnavailable, ValueError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    except (FetchFailure, DatastoreError) as exc:
        logger.error("Add product failed: %s", exc, exc_info=True)
        _err.print(f"[red]Could not add product: {exc}[/red]")
        return 1
    finally:
        datastore.close()

    p = result.product
    _err.print(f"[green]✓ {result.message}[/green]")
    _err.print(
        f"  #{p.id} {p.asin}  {p.title[:60]}  {_price(p.current_price)}"
    )
    if result.alert is not None:
        mode = (
            f"target {_price(result.alert.target_price)}"
            if result.alert.target_price is not None
            else "predicted price"
        )
        _err.print(f"  alert #{result.alert.id} → {result.alert.user_email} ({mode})")
    return 0


def run_list() -> int:
    """Print every tracked product with its alert count."""
    datastore = SqliteDatastore()
    try:
        items = TrackingService(datastore).list_products()
    finally:
        datastore.close()

    if not items:
        _err.print("[yellow]No products tracked yet.[/yellow]")
        return 0

    table = Table(title="Tracked Products", title_style="bold cyan")
    table.add_column("#", style="dim")
    table.add_column("ASIN", style="bold")
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Alerts", justify="right")
    table.add_column("Active", justify="center")
    table.add_column("Last checked", style="dim")

    for item in items:
        p = item.product
        active_alerts = sum(1 for a in item.alerts if a.is_active)
        table.add_row(
            str(p.id),
            p.asin,
            p.title[:50],
            _price(p.current_price),
            str(active_alerts),
            "✓" if p.is_active else "✗",
            (
                p.last_checked_at.strftime("%Y-%m-%d %H:%M")
                if p.last_checked_at
                else "—"
            ),
        )
    Console().print(table)
    return 0


def run_show(product_id: int) -> int:
    """Print one product's history, alerts and prediction."""
    datastore = SqliteDatastore()
    try:
        details = TrackingService(datastore).get_product_details(product_id)
    except KeyError:
        _err.print(f"[red]No product with id {product_id}[/red]")
        return 1
    finally:
        datastore.close()

    p = details.product
    console = Console()
    console.print(f"[bold]{p.title}[/bold]  ({p.asin})")
    console.print(f"[dim]{p.url}[/dim]")
    if details.summary:
        s = details.summary
        console.print(
            f"latest {_price(float(s['latest']))}  "
            f"min {_price(float(s['min']))}  "
            f"max {_price(float(s['max']))}  "
            f"avg {_price(float(s['avg']))}  "
            f"({s['count']} points)"
        )
    if details.prediction:
        console.print(
            f"trend [bold]{details.prediction.trend.value}[/bold], "
            f"good price ≈ {_price(details.prediction.predicted_price)}"
        )

    history = Table(title="Price History", title_style="bold cyan")
    history.add_column("Checked at", style="dim")
    history.add_column("Price", justify="right", style="green")
    for point in details.price_history:
        history.add_row(
            point.checked_at.strftime("%Y-%m-%d %H:%M"),
            _price(point.price),
        )
    console.print(history)

    alerts = Table(title="Alerts", title_style="bold cyan")
    alerts.add_column("#", style="dim")
    alerts.add_column("Email")
    alerts.add_column("Target", justify="right")
    alerts.add_column("Predicted", justify="right")
    alerts.add_column("Active", justify="center")
    alerts.add_column("Last notified", style="dim")
    for a in details.alerts:
        alerts.add_row(
            str(a.id),
            a.user_email,
            _price(a.target_price),
            _price(a.predicted_price),
            "✓" if a.is_active else "✗",
            a.notified_at.strftime("%Y-%m-%d %H:%M") if a.notified_at else "—",
        )
    console.print(alerts)
    return 0


def run_deactivate(record_id: int, is_alert: bool) -> int:
    """Deactivate a product or an alert."""
    datastore = SqliteDatastore()
    try:
        service = TrackingService(datastore)
        if is_alert:
            service.deactivate_alert(record_id)
        else:
            service.deactivate_product(record_id)
    except KeyError:
        kind = "alert" if is_alert else "product"
        _err.print(f"[red]No {kind} with id {record_id}[/red]")
        return 1
    finally:
        datastore.close()

    _err.print(f"[green]✓ Deactivated {'alert' if is_alert else 'product'} {record_id}[/green]")
    return 0


def available_fetcher_ids() -> list[str]:
    """Registry ids accepted by ``--fetcher``."""
    return [e["id"] for e in Settings.AVAILABLE_FETCHERS]
