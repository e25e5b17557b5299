"""Command-line interface for hontodana data portability.

Built with Typer for commands and Rich for output.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from .config import get_config
from .errors import PortabilityError, to_response
from .export import DateRange, ExportOptions, ExportService
from .imports import ImportOptions, ImportPreview, ImportService
from .jobs import ImportJobManager, ImportSummary, JobStatus, SQLJobStore
from .limits import RateLimiter
from .logs import setup_logging
from .merge import MergeStrategy
from .store import Database, SQLRecordStore, get_db, reset_db

app = typer.Typer(
    name="hontodana-port",
    help="Import and export book-tracking data (JSON, CSV, Goodreads).",
    no_args_is_help=True,
)

console = Console()

POLL_INTERVAL = 0.1


@dataclass
class Services:
    db: Database
    store: SQLRecordStore
    jobs: ImportJobManager
    imports: ImportService
    exports: ExportService


_services: Optional[Services] = None


def get_services() -> Services:
    """Build the services over the configured database on first use."""
    global _services
    if _services is None:
        config = get_config()
        db = get_db()
        db.create_tables()
        store = SQLRecordStore(db)
        jobs = ImportJobManager(SQLJobStore(db))
        limiter = RateLimiter.from_config(config)
        _services = Services(
            db=db,
            store=store,
            jobs=jobs,
            imports=ImportService(store, jobs, config=config, rate_limiter=limiter),
            exports=ExportService(store, rate_limiter=limiter),
        )
    return _services


def reset_services() -> None:
    """Drop the cached services and database. Used for testing."""
    global _services
    _services = None
    reset_db()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_failure(error: PortabilityError) -> None:
    """Print a structured error and its details."""
    body, status = to_response(error)
    payload = body["error"]
    print_error(f"{payload['message']} [dim]({payload['code']}, {status})[/dim]")
    retry_after = payload.get("details", {}).get("retryAfter")
    if retry_after:
        console.print(f"  Retry after {retry_after} seconds")


def print_record_errors(errors: list[PortabilityError], limit: int = 10) -> None:
    for error in errors[:limit]:
        console.print(f"  [red]{error.message}[/red]")
    if len(errors) > limit:
        console.print(f"  [dim]... and {len(errors) - limit} more[/dim]")


def format_preview_table(preview: ImportPreview) -> Table:
    """Create a rich table summarizing an import preview."""
    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    bundle = preview.bundle
    table.add_row("Format", preview.format.value)
    table.add_row("Books", str(len(bundle.books)))
    table.add_row("Library entries", str(len(bundle.user_books)))
    table.add_row("Reading sessions", str(len(bundle.reading_sessions)))
    table.add_row("Wishlist items", str(len(bundle.wishlist_items)))
    table.add_row("Collections", str(len(bundle.collections)))
    table.add_row("Duplicates", str(len(preview.duplicates)))
    table.add_row("Invalid records", str(preview.invalid_records))
    return table


def format_duplicates_table(preview: ImportPreview, limit: int = 10) -> Table:
    table = Table(title="Duplicates", show_header=True, header_style="bold magenta")
    table.add_column("Incoming", style="cyan", max_width=40)
    table.add_column("Existing", style="green", max_width=40)
    table.add_column("Score", justify="right")
    table.add_column("Match")

    for match in preview.duplicates[:limit]:
        table.add_row(
            match.incoming.title,
            match.existing.title,
            f"{match.score:.2f}",
            match.method.value,
        )
    return table


def format_summary_table(summary: ImportSummary) -> Table:
    table = Table(title="Import Summary", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Count", justify="right")

    table.add_row("Books added", str(summary.books_added))
    table.add_row("Books updated", str(summary.books_updated))
    table.add_row("Books skipped", str(summary.books_skipped))
    table.add_row("Sessions added", str(summary.sessions_added))
    table.add_row("Wishlist items added", str(summary.wishlist_items_added))
    table.add_row("Collections added", str(summary.collections_added))
    table.add_row("Collections updated", str(summary.collections_updated))
    table.add_row("Records processed", str(summary.total_processed))
    return table


def show_preview(preview: ImportPreview) -> None:
    console.print(Panel("[bold]Import Preview[/bold]", style="magenta"))
    console.print(format_preview_table(preview))

    if preview.duplicates:
        console.print(format_duplicates_table(preview))

    if preview.errors:
        console.print(f"\n[bold]Errors ({len(preview.errors)}):[/bold]")
        print_record_errors(preview.errors)

    for warning in preview.warnings:
        print_warning(warning)


def parse_date_option(value: Optional[str], name: str):
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        print_error(f"Invalid {name} date: {value}. Use YYYY-MM-DD")
        raise typer.Exit(1)


# ============================================================================
# Commands
# ============================================================================


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
) -> None:
    """Move your reading data in and out of hontodana."""
    config = get_config()
    setup_logging("DEBUG" if verbose else config.log_level, config.log_json)


@app.command("add-user")
def add_user(user_id: str = typer.Argument(..., help="User id to register")) -> None:
    """Register a user so data can be imported for them."""
    store = get_services().store
    if store.user_exists(user_id):
        print_warning(f"User already exists: {user_id}")
        return
    store.add_user(user_id)
    print_success(f"Added user {user_id}")


@app.command()
def preview(
    file: Path = typer.Argument(..., help="File to preview"),
    user: str = typer.Option(..., "--user", "-u", help="Importing user id"),
    format: Optional[str] = typer.Option(None, "--format", "-f", help="json, csv or goodreads (detected if omitted)"),
) -> None:
    """Preview what would be imported from a file, without importing."""
    if not file.exists():
        print_error(f"File not found: {file}")
        raise typer.Exit(1)

    services = get_services()
    with open(file, "rb") as f:
        response = services.imports.prepare(f, user, filename=file.name, fmt=format)

    if not response.success:
        print_failure(response.error)
        raise typer.Exit(1)

    show_preview(response.preview)
    services.imports.cancel(response.job_id)
    console.print("\n[dim]Preview only - no changes made.[/dim]")


@app.command("import")
def import_file(
    file: Path = typer.Argument(..., help="File to import"),
    user: str = typer.Option(..., "--user", "-u", help="Importing user id"),
    format: Optional[str] = typer.Option(None, "--format", "-f", help="json, csv or goodreads (detected if omitted)"),
    strategy: str = typer.Option("merge", "--strategy", "-s", help="Duplicates: skip, update, merge, create_new"),
    strict: bool = typer.Option(False, "--strict", help="Fail on the first error"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Import without asking for confirmation"),
) -> None:
    """Import books, sessions, wishlist and collections from a file."""
    if not file.exists():
        print_error(f"File not found: {file}")
        raise typer.Exit(1)

    try:
        merge_strategy = MergeStrategy(strategy.lower())
    except ValueError:
        print_error(f"Invalid strategy: {strategy}. Use: {', '.join(s.value for s in MergeStrategy)}")
        raise typer.Exit(1)

    options = ImportOptions(strategy=merge_strategy, strict_mode=strict)
    services = get_services()

    with open(file, "rb") as f:
        response = services.imports.prepare(f, user, filename=file.name, fmt=format, options=options)

    if not response.success:
        print_failure(response.error)
        raise typer.Exit(1)

    show_preview(response.preview)

    if not yes and not typer.confirm("\nProceed with import?"):
        services.imports.cancel(response.job_id)
        console.print("[dim]Import cancelled.[/dim]")
        raise typer.Exit(0)

    job_id = response.job_id
    services.imports.confirm(job_id)

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Importing...", total=100)
        status = services.jobs.get_status(job_id)
        while status is not None and not status.status.is_terminal:
            progress.update(task, completed=status.progress)
            time.sleep(POLL_INTERVAL)
            status = services.jobs.get_status(job_id)
        progress.update(task, completed=100)

    result = services.imports.result(job_id)
    if result.summary is not None:
        console.print(format_summary_table(result.summary))
    for warning in result.warnings:
        print_warning(warning)

    if status.status == JobStatus.COMPLETED:
        print_success(f"Import complete (job {job_id})")
        if result.summary and result.summary.errors:
            console.print(f"\n[bold]Skipped records ({len(result.summary.errors)}):[/bold]")
            print_record_errors(result.summary.errors)
        return

    print_error(f"Import {status.status.value} (job {job_id})")
    print_record_errors(result.errors)
    raise typer.Exit(1)


@app.command()
def export(
    user: str = typer.Option(..., "--user", "-u", help="User id to export"),
    format: str = typer.Option("json", "--format", "-f", help="json, csv or goodreads"),
    types: str = typer.Option(
        "userBooks,sessions,wishlist,collections,profile",
        "--types", "-t",
        help="Comma-separated data types",
    ),
    from_date: Optional[str] = typer.Option(None, "--from", help="First session date (YYYY-MM-DD)"),
    to_date: Optional[str] = typer.Option(None, "--to", help="Last session date (YYYY-MM-DD)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file or directory"),
    compress: bool = typer.Option(False, "--compress", "-z", help="Gzip the output"),
) -> None:
    """Export a user's data to a file."""
    date_range = None
    if from_date or to_date:
        date_range = DateRange(
            from_date=parse_date_option(from_date, "--from"),
            to_date=parse_date_option(to_date, "--to"),
        )

    options = ExportOptions(
        format=format.lower(),
        data_types=[t.strip() for t in types.split(",") if t.strip()],
        date_range=date_range,
        compress=compress,
    )

    result = get_services().exports.export(user, options)
    if not result.success:
        print_failure(result.error)
        raise typer.Exit(1)

    if output is None:
        path = Path(result.filename)
    elif output.is_dir():
        path = output / result.filename
    else:
        path = output

    path.write_bytes(result.payload)
    print_success(f"Exported {result.records_exported} records to {path}")


@app.command()
def status(job_id: str = typer.Argument(..., help="Import job id")) -> None:
    """Show the status of an import job."""
    snapshot = get_services().jobs.get_status(job_id)
    if snapshot is None:
        print_error(f"Job not found: {job_id}")
        raise typer.Exit(1)

    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Status", snapshot.status.value)
    table.add_row("Progress", f"{snapshot.progress}%")
    if snapshot.estimated_time_remaining is not None:
        table.add_row("Time remaining", f"{snapshot.estimated_time_remaining}s")
    console.print(table)

    if snapshot.summary is not None:
        console.print(format_summary_table(snapshot.summary))
    if snapshot.errors:
        print_record_errors(snapshot.errors)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"hontodana-port version {__version__}")


if __name__ == "__main__":
    app()
