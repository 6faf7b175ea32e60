"""Command-line interface for the one-way album sync."""

import asyncio
import logging
import os
import sys
import threading
from pathlib import Path
from types import TracebackType
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from nostalgia.api_client import GooglePhotosClient
from nostalgia.models import SyncSummary
from nostalgia.syncer import DirectorySyncer
from nostalgia.upload_queue import (
    CONCURRENCY,
    FIRST_COOLDOWN,
    MAX_CONSECUTIVE_ERRORS,
    QueueSettings,
)
from nostalgia.utils import format_size

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_UNHANDLED_ASYNC = 2
EXIT_UNHANDLED_FAULT = 3

LOG_LEVELS = ("debug", "info", "warning", "error")

app = typer.Typer(
    name="nostalgia",
    help="Sync local media directories into Google Photos albums, one way",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure logging with Rich handler.

    Args:
        level: Log level name, e.g. "info"
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
        force=True,
    )


def handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    """Terminate on an asynchronous error nothing else handled."""
    logger.error(
        f"Unhandled asynchronous error: {context.get('message')}",
        exc_info=context.get("exception"),
    )
    os._exit(EXIT_UNHANDLED_ASYNC)


def handle_uncaught_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    """Terminate on a synchronous fault nothing else handled."""
    logger.error("Unhandled error", exc_info=(exc_type, exc_value, exc_traceback))
    os._exit(EXIT_UNHANDLED_FAULT)


def handle_thread_exception(args: threading.ExceptHookArgs) -> None:
    """Terminate on an error escaping a worker thread."""
    handle_uncaught_exception(args.exc_type, args.exc_value, args.exc_traceback)


def install_fault_handlers() -> None:
    """Route uncaught main-thread and worker-thread errors to the fault handlers."""
    sys.excepthook = handle_uncaught_exception
    threading.excepthook = handle_thread_exception


def print_summary(summaries: list[SyncSummary]) -> None:
    """Print a per-directory table of sync counters."""
    table = Table(title="Sync Summary")
    table.add_column("Directory", style="cyan")
    table.add_column("Ignored", justify="right")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Failed", justify="right")
    table.add_column("Uploaded", justify="right")

    for summary in summaries:
        failed_style = "red bold" if summary.failed else "green"
        table.add_row(
            summary.directory,
            str(summary.ignored),
            str(summary.added),
            f"[{failed_style}]{summary.failed}[/{failed_style}]",
            format_size(summary.uploaded_bytes),
        )

    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        str(sum(s.ignored for s in summaries)),
        str(sum(s.added for s in summaries)),
        str(sum(s.failed for s in summaries)),
        format_size(sum(s.uploaded_bytes for s in summaries)),
    )
    console.print(table)


async def async_sync(
    source_root: Path,
    access_token: str,
    settings: QueueSettings,
    dry_run: bool,
) -> int:
    """Async sync implementation.

    Args:
        source_root: Root directory containing album subdirectories
        access_token: Google Photos OAuth2 access token
        settings: Upload queue tunables
        dry_run: If True, report what would be uploaded without API calls

    Returns:
        Exit code
    """
    asyncio.get_running_loop().set_exception_handler(handle_loop_exception)

    try:
        async with GooglePhotosClient(access_token) as api_client:
            syncer = DirectorySyncer(api_client, source_root, settings=settings, dry_run=dry_run)
            summaries = await syncer.sync_all()
    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        return EXIT_SYNC_FAILED

    print_summary(summaries)
    if any(summary.failed for summary in summaries):
        return EXIT_SYNC_FAILED
    return EXIT_OK


@app.command()
def sync(
    source_root: Path = typer.Argument(
        None,
        help="Root directory containing album subdirectories",
        show_default=False,
    ),
    access_token: str = typer.Option(
        None,
        "--access-token",
        "-t",
        envvar="GOOGLE_PHOTOS_ACCESS_TOKEN",
        help="Google Photos access token (or set GOOGLE_PHOTOS_ACCESS_TOKEN env var)",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        envvar="LOG_LEVEL",
        help="Log verbosity: debug, info, warning or error",
    ),
    concurrency: int = typer.Option(
        CONCURRENCY,
        "--concurrency",
        "-c",
        min=1,
        max=50,
        help="Maximum number of concurrent uploads",
    ),
    max_consecutive_errors: int = typer.Option(
        MAX_CONSECUTIVE_ERRORS,
        "--max-consecutive-errors",
        min=0,
        help="Consecutive failures tolerated before pausing uploads",
    ),
    first_cooldown: float = typer.Option(
        FIRST_COOLDOWN,
        "--first-cooldown",
        min=0,
        help="Seconds of the first pause; doubles on each further pause",
    ),
    max_attempts: int = typer.Option(
        None,
        "--max-attempts",
        min=1,
        help="Give up on a file after this many attempts (default: retry forever)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be uploaded without making API calls",
    ),
) -> None:
    """Sync media files to Google Photos albums.

    Each subdirectory of SOURCE_ROOT is synced into the album with the same
    title. Files already recorded in the directory's nostalgia.json are
    skipped, so interrupted runs can simply be started again.
    """
    if log_level.lower() not in LOG_LEVELS:
        raise typer.BadParameter(
            f"must be one of: {', '.join(LOG_LEVELS)}", param_hint="--log-level"
        )
    setup_logging(log_level)
    install_fault_handlers()

    if source_root is None:
        console.print("[red]Error: SOURCE_ROOT is required.[/red]")
        raise typer.Exit(EXIT_SYNC_FAILED)

    if not source_root.is_dir():
        console.print(f"[red]Error: SOURCE_ROOT is not a directory: {source_root}[/red]")
        raise typer.Exit(EXIT_SYNC_FAILED)

    if not dry_run and not access_token:
        console.print(
            "[red]Error: Google Photos access token is required. "
            "Provide via --access-token or GOOGLE_PHOTOS_ACCESS_TOKEN environment variable.[/red]"
        )
        raise typer.Exit(EXIT_SYNC_FAILED)

    if dry_run and not access_token:
        access_token = "dry_run_token"

    settings = QueueSettings(
        concurrency=concurrency,
        max_consecutive_errors=max_consecutive_errors,
        first_cooldown=first_cooldown,
        max_attempts=max_attempts,
    )
    exit_code = asyncio.run(async_sync(source_root, access_token, settings, dry_run))
    raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
