#!/usr/bin/env python3
"""
Rentdesk report CLI
---------------------------------
Run and inspect the monthly landlord report.
Usage:
    rentdesk-manage report run [--date YYYY-MM-DD]
    rentdesk-manage report preview [--date YYYY-MM-DD] [--out report.html]
    rentdesk-manage emails list <landlord_id> [limit]
    rentdesk-manage db test
"""

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from inspect import iscoroutinefunction
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rentdesk.core.config import ReportSettings
from rentdesk.core.database import db_manager
from rentdesk.core.exceptions import ReportConfigurationError
from rentdesk.core.log_config import configure_logging
from rentdesk.reports.dispatcher import MonthlyReportDispatcher, send_monthly_summary_report
from rentdesk.services.email_log import EmailLogService
from rentdesk.services.email_services import EmailService
from rentdesk.services.landlord_store import MongoLandlordStore

COMMANDS = {}
def command(category: str, name: str, description: str=None):
    """
    Decorator to auto-register CLI commands.
    Example:
        @command("report", "run", "Run the monthly report now")
        async def run_report(*args): ...
    """
    def decorator(func):
        doc = (func.__doc__ or "").strip().splitlines()[0] if not description else description
        COMMANDS.setdefault(category, {})[name] = {
            "func": func,
            "description": doc,
        }
        return func
    return decorator


console = Console()


def show_help():
    console.print(Panel.fit("[bold cyan]Rentdesk CLI[/bold cyan]"))

    for category, cmds in COMMANDS.items():
        table = Table(title=f"[bold]{category.capitalize()} Commands[/bold]", show_header=True, header_style="bold magenta")
        table.add_column("Command", style="cyan")
        table.add_column("Description", style="white")
        for name, meta in cmds.items():
            table.add_row(name, meta["description"])
        console.print(table)

    console.print("\nExample:\n[green]rentdesk-manage report preview --date 2024-03-01 --out report.html[/green]")


def _reference_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rentdesk-manage report", description=description)
    parser.add_argument("--date", help="Reference date (YYYY-MM-DD); the month before it is reported")
    return parser


def _parse_reference(value):
    if not value:
        return None
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


# ---------------------------
# REPORT
# ---------------------------

@command("report", "run")
async def run_report(*args):
    """Run the monthly report and send it now"""
    args = _reference_parser("Run the monthly report").parse_args(list(args))
    try:
        result = await send_monthly_summary_report(reference=_parse_reference(args.date))
    finally:
        await db_manager.close()

    if result is None:
        console.print("[yellow]Nothing sent. Check REPORTS_TO / REPORTS_LANDLORD.[/yellow]")
        return

    table = Table(title=f"Monthly report {result.period.label}")
    table.add_column("Recipient", style="cyan")
    table.add_column("Status")
    table.add_column("Error", style="dim")
    for recipient in result.sent:
        table.add_row(recipient, "[green]sent[/green]", "")
    for recipient, reason in result.failed:
        table.add_row(recipient, "[red]failed[/red]", reason)
    console.print(table)
    if result.error:
        console.print(f"[red]Run failed: {result.error}[/red]")


@command("report", "preview")
async def preview_report(*args):
    """Render the report to files without sending"""
    parser = _reference_parser("Render the monthly report without sending")
    parser.add_argument("--out", default="monthly-report.html", help="HTML output file")
    args = parser.parse_args(list(args))

    settings = ReportSettings.from_env()
    if not settings.landlord_id:
        raise ReportConfigurationError("REPORTS_LANDLORD is not set")

    try:
        await db_manager.initialize()
        db = db_manager.database
        dispatcher = MonthlyReportDispatcher(
            store=MongoLandlordStore(db),
            email_service=EmailService(),
            email_log=EmailLogService.from_database(db),
            settings=settings,
        )
        prepared = await dispatcher.prepare(settings.landlord_id, _parse_reference(args.date))
    finally:
        await db_manager.close()

    html_path = Path(args.out)
    html_path.write_text(prepared.rendered.html, encoding="utf-8")
    csv_path = html_path.with_name(prepared.details.csv.filename)
    csv_path.write_text(prepared.details.csv.content, encoding="utf-8")

    summary = prepared.summary
    table = Table(title=prepared.rendered.subject, show_header=False)
    table.add_row("Rent collected", f"{summary.total_rent_collected:g}")
    table.add_row("New leases", str(summary.new_leases))
    table.add_row("Ended leases", str(summary.ended_leases))
    table.add_row("Occupancy", f"{summary.occupancy_rate}%")
    console.print(table)
    console.print(f"[green]Wrote {html_path} and {csv_path}[/green]")


# ---------------------------
# EMAILS
# ---------------------------

@command("emails", "list")
async def list_emails(landlord_id=None, limit="20", *args):
    """Show recent audit entries for a landlord"""
    if not landlord_id:
        console.print("[red]Usage: rentdesk-manage emails list <landlord_id> [limit][/red]")
        return

    try:
        await db_manager.initialize()
        service = EmailLogService.from_database(db_manager.database)
        entries = await service.get_history(landlord_id, limit=int(limit))
    finally:
        await db_manager.close()

    table = Table(title=f"Emails for {landlord_id}")
    table.add_column("Sent at", style="cyan")
    table.add_column("Status")
    table.add_column("Recipients")
    table.add_column("Subject")
    table.add_column("Error", style="dim")
    for entry in entries:
        status = entry.get("status", "")
        colour = "green" if status == "sent" else "red" if status == "failed" else "yellow"
        table.add_row(
            str(entry.get("sentAt", "")),
            f"[{colour}]{status}[/{colour}]",
            ", ".join(entry.get("recipients") or []),
            entry.get("subject", ""),
            entry.get("error") or "",
        )
    console.print(table)


# ---------------------------
# DB
# ---------------------------

@command("db", "test")
async def db_test(*args):
    """Check the database connection"""
    try:
        await db_manager.initialize()
        health = await db_manager.health_check()
        if health["status"] == "healthy":
            console.print(f"[green]DB Connected: okay ({health['latency_ms']} ms)[/green]")
        else:
            console.print(f"[red]DB error {health.get('error')}[/red]")
    except Exception as e:
        console.print(f"[red]DB error {e}[/red]")
    finally:
        await db_manager.close()


async def main_dynamic(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ["help", "--help", "-h"]:
        show_help()
        return

    category = argv[0]
    cmd = argv[1] if len(argv) > 1 else None

    if category not in COMMANDS:
        console.print(f"[red]Unknown category '{category}'[/red]")
        show_help()
        return

    if not cmd or cmd not in COMMANDS[category]:
        console.print(f"[yellow]Unknown or missing command for category '{category}'[/yellow]")
        show_help()
        return

    func = COMMANDS[category][cmd]["func"]
    if iscoroutinefunction(func):
        await func(*argv[2:])
    else:
        func(*argv[2:])


def cli():
    configure_logging()
    try:
        asyncio.run(main_dynamic())
    except KeyboardInterrupt:
        console.print("\n[red]Aborted by user.[/red]")
    except ReportConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli()
