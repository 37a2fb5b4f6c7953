"""
tokensyphon CLI - Command-line interface for tokensyphon.

Import Claude Code usage logs into a local database, keep them in sync while
Claude is running, and print usage reports.
"""

import json
import logging
import os
import time
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from tokensyphon.config import Settings, settings
from tokensyphon.db.connection import db_session
from tokensyphon.db.repositories import ClaudeLogRepository
from tokensyphon.exceptions import ConfigurationError, TokenSyphonError
from tokensyphon.logging_config import setup_logging
from tokensyphon.parsers.utils import parse_iso_timestamp, to_epoch_ms
from tokensyphon.services import IngestionService

app = typer.Typer(
    name="tokensyphon",
    help="tokensyphon - Claude Code token usage tracker",
    no_args_is_help=True,
)
report_app = typer.Typer(help="Print usage reports", no_args_is_help=True)
app.add_typer(report_app, name="report")

console = Console()


def _init_logging(context: str) -> None:
    try:
        setup_logging(context=context)
    except PermissionError:
        # File logging not permitted, fall back to console only
        logging.basicConfig(level=logging.INFO)


def _resolve_settings(config_dir: Optional[str]) -> Settings:
    """Apply a --config-dir override on top of the global settings."""
    if not config_dir:
        return settings

    missing = [
        p.strip()
        for p in config_dir.split(",")
        if p.strip() and not os.path.isdir(os.path.expanduser(p.strip()))
    ]
    if missing:
        raise ConfigurationError(f"Config directory not found: {', '.join(missing)}")
    return settings.model_copy(update={"claude_config_dir": config_dir})


def _parse_time(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return to_epoch_ms(parse_iso_timestamp(value))
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _print_json(rows: list[Any]) -> None:
    console.print_json(json.dumps([row.to_dict() for row in rows]))


def _usage_table(title: str, key_header: str) -> Table:
    table = Table(title=title)
    table.add_column(key_header, style="cyan")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cache Create", justify="right")
    table.add_column("Cache Read", justify="right")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Cost (USD)", justify="right", style="green")
    return table


def _usage_cells(usage: Any) -> list[str]:
    return [
        f"{usage.input_tokens:,}",
        f"{usage.output_tokens:,}",
        f"{usage.cache_creation_input_tokens:,}",
        f"{usage.cache_read_input_tokens:,}",
        f"{usage.total_tokens:,}",
        f"${usage.cost_usd:.2f}",
    ]


@app.command()
def scan(
    config_dir: str = typer.Option(
        None, "--config-dir", help="Claude config directory (comma-separated for several)"
    ),
    incremental: bool = typer.Option(
        False, "--incremental", help="Only read files that changed since the last scan"
    ),
) -> None:
    """
    Scan Claude log directories and import usage into the database.
    """
    _init_logging("cli")

    try:
        service_settings = _resolve_settings(config_dir)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    service = IngestionService(service_settings, session_factory=db_session)
    dirs = service.config_dirs
    if not dirs:
        console.print("[yellow]No Claude config directories found[/yellow]")
        raise typer.Exit(0)

    console.print(f"[bold blue]Scanning:[/bold blue] {', '.join(dirs)}")

    try:
        service.initialize(watch_enabled=False, scan_on_startup=False, scan_interval_ms=0)
        result = service.incremental_scan() if incremental else service.scan_and_import()
    except TokenSyphonError as e:
        console.print(f"[red]✗ DB Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        service.dispose()

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Files processed: {result.files_processed}")
    console.print(f"  Files skipped: {result.files_skipped}")
    console.print(f"  Entries found: {result.entries_found}")
    console.print(f"  Errors: {len(result.errors)}")

    for error in result.errors[:5]:
        location = f":{error.line}" if error.line is not None else ""
        console.print(f"  [yellow]⚠ {error.file_path}{location}:[/yellow] {error.error}")
    if len(result.errors) > 5:
        console.print(f"  ... and {len(result.errors) - 5} more")


@app.command()
def watch(
    config_dir: str = typer.Option(
        None, "--config-dir", help="Claude config directory (comma-separated for several)"
    ),
    interval: int = typer.Option(
        None, "--interval", help="Periodic scan interval in ms (0 disables)"
    ),
) -> None:
    """
    Import usage continuously, following log files as Claude writes them.
    """
    _init_logging("watch")

    try:
        service_settings = _resolve_settings(config_dir)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    service = IngestionService(service_settings, session_factory=db_session)

    try:
        service.initialize(watch_enabled=True, scan_interval_ms=interval)
    except TokenSyphonError as e:
        console.print(f"[red]✗ DB Error:[/red] {e}")
        service.dispose()
        raise typer.Exit(1)

    if not service.is_watching:
        console.print("[yellow]⚠ No log directories could be watched[/yellow]")
    else:
        console.print("[bold green]Watching for Claude usage...[/bold green] (Ctrl+C to stop)")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        service.dispose()


@report_app.command("daily")
def report_daily(
    since: str = typer.Option(None, help="First date (YYYY-MM-DD)"),
    until: str = typer.Option(None, help="Last date (YYYY-MM-DD)"),
    project: str = typer.Option(None, help="Only this project"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Usage per day."""
    with db_session() as db:
        rows = ClaudeLogRepository(db).get_daily_usage(since, until, project)

    if as_json:
        _print_json(rows)
        return

    table = _usage_table("Daily Usage", "Date")
    table.add_column("Sessions", justify="right")
    for usage in rows:
        table.add_row(usage.date, *_usage_cells(usage), str(usage.session_count))
    console.print(table)


@report_app.command("monthly")
def report_monthly(
    since: str = typer.Option(None, help="First month (YYYY-MM)"),
    until: str = typer.Option(None, help="Last month (YYYY-MM)"),
    project: str = typer.Option(None, help="Only this project"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Usage per month."""
    with db_session() as db:
        rows = ClaudeLogRepository(db).get_monthly_usage(since, until, project)

    if as_json:
        _print_json(rows)
        return

    table = _usage_table("Monthly Usage", "Month")
    table.add_column("Days", justify="right")
    for usage in rows:
        table.add_row(usage.month, *_usage_cells(usage), str(usage.day_count))
    console.print(table)


@report_app.command("sessions")
def report_sessions(
    limit: int = typer.Option(20, help="Number of sessions"),
    offset: int = typer.Option(0, help="Sessions to skip"),
    project: str = typer.Option(None, help="Only this project"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Usage per session, most recent first."""
    with db_session() as db:
        rows, total = ClaudeLogRepository(db).get_session_usage(limit, offset, project)

    if as_json:
        _print_json(rows)
        return

    table = _usage_table(f"Sessions ({len(rows)} of {total})", "Session")
    table.add_column("Project")
    table.add_column("Model")
    table.add_column("Last Activity")
    for usage in rows:
        table.add_row(
            usage.session_id[:8],
            *_usage_cells(usage),
            usage.project_path,
            usage.model or "-",
            usage.end_time,
        )
    console.print(table)


@report_app.command("blocks")
def report_blocks(
    since: str = typer.Option(None, help="Start time (ISO 8601)"),
    until: str = typer.Option(None, help="End time (ISO 8601)"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Usage per 5-hour billing block."""
    start_time = _parse_time(since)
    end_time = _parse_time(until)

    with db_session() as db:
        rows = ClaudeLogRepository(db).get_billing_block_usage(start_time, end_time)

    if as_json:
        _print_json(rows)
        return

    table = _usage_table("Billing Blocks", "Block Start")
    table.add_column("Requests", justify="right")
    for usage in rows:
        table.add_row(usage.block_start, *_usage_cells(usage), str(usage.request_count))
    console.print(table)


@report_app.command("projects")
def report_projects(
    as_json: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Usage per project."""
    with db_session() as db:
        rows = ClaudeLogRepository(db).get_projects()

    if as_json:
        _print_json(rows)
        return

    table = Table(title="Projects")
    table.add_column("Project", style="cyan")
    table.add_column("Sessions", justify="right")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Cost (USD)", justify="right", style="green")
    table.add_column("Last Activity")
    for summary in rows:
        table.add_row(
            summary.project_path,
            str(summary.session_count),
            f"{summary.total_tokens:,}",
            f"${summary.cost_usd:.2f}",
            summary.last_activity,
        )
    console.print(table)


if __name__ == "__main__":
    app()
