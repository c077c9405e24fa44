"""CLI entry point for uploading local media folders to the asset server."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import datetime

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from sync_media.clients.server import AssetServerClient
from sync_media.config import DEFAULT_CONCURRENCY, ConfigError, options_from_args
from sync_media.sync_engine import SyncEngine, SyncResult, format_size

LOG_DIR = "logs"

EXIT_OK = 0
EXIT_DISCOVERY_ERROR = 1
EXIT_CONFIG_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Upload photos and videos from local folders to the asset server, skipping duplicates."
    )
    parser.add_argument(
        "paths",
        nargs="+",
        help="Folders (or single files) to upload",
    )
    parser.add_argument(
        "--url", "-u",
        default=os.getenv("SYNC_SERVER_URL"),
        help="Server API base URL, e.g. http://nas:2283/api (env: SYNC_SERVER_URL)",
    )
    parser.add_argument(
        "--key", "-k",
        default=os.getenv("SYNC_API_KEY"),
        help="API key (env: SYNC_API_KEY)",
    )
    parser.add_argument(
        "--no-recursive",
        dest="recursive",
        action="store_false",
        help="Only look at files directly inside the given folders",
    )
    parser.add_argument(
        "--include-hidden",
        action="store_true",
        help="Also upload hidden files and descend into hidden folders",
    )
    parser.add_argument(
        "--album",
        action="store_true",
        help="Put each asset into an album named after its top folder under the given path",
    )
    parser.add_argument(
        "--album-name",
        default=os.getenv("SYNC_ALBUM_NAME", ""),
        help="Put every asset into this one album (implies --album)",
    )
    parser.add_argument(
        "--skip-hash",
        action="store_true",
        help="Do not hash files or ask the server for duplicates; upload everything",
    )
    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        # argparse runs string defaults through type=int, so a bad env value is a usage error
        default=os.getenv("SYNC_CONCURRENCY", "").strip() or DEFAULT_CONCURRENCY,
        metavar="N",
        help=f"Parallel workers and batch size (default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--ignore-unreadable",
        action="store_true",
        help="Skip folders that cannot be listed instead of aborting",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Check against the server but do not upload or change albums",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output and progress bars",
    )
    return parser


def _setup_logging(
    verbose: bool,
    console: Console,
    log_filename: str,
) -> None:
    """Configure dual logging: rich console + plain-text log file."""
    log_level = logging.DEBUG if verbose else logging.INFO
    plain_format = "%(asctime)s  %(levelname)-8s  %(message)s"

    root = logging.getLogger()
    root.setLevel(log_level)

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(log_level)
    root.addHandler(rich_handler)

    # Plain-text file handler (no ANSI in log files)
    file_handler = logging.FileHandler(log_filename, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(plain_format, datefmt="%H:%M:%S"))
    root.addHandler(file_handler)


def _print_summary(console: Console, result: SyncResult, elapsed: float, log_filename: str) -> None:
    """Print a rich summary panel at the end of a run."""
    verb = "Would upload" if result.dry_run else "Uploaded"
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Found", str(result.found))
    table.add_row("New", str(len(result.check.new)))
    if not result.dry_run:
        table.add_row(verb, f"[green]{result.uploaded}[/green]")
    table.add_row("Duplicates", str(len(result.check.duplicate)))
    table.add_row("Rejected", str(len(result.check.rejected)))
    failed = len(result.failed_uploads) + len(result.check.dropped)
    failed_style = "red bold" if failed else "green"
    table.add_row("Failed", f"[{failed_style}]{failed}[/{failed_style}]")
    if result.total_bytes:
        table.add_row(f"{verb} data", format_size(result.total_bytes))
    if result.albums is not None:
        table.add_row("Albums created", str(result.albums.created_album_count))
        table.add_row("Assets added to albums", str(result.albums.updated_asset_count))
    table.add_row("Elapsed", f"{elapsed:.1f}s")

    panel_style = "green" if result.all_ok else "red"
    if result.dry_run:
        title = "Dry Run Complete"
    else:
        title = "Sync Complete" if result.all_ok else "Sync Complete (with errors)"
    console.print()
    console.print(Panel(table, title=title, border_style=panel_style, padding=(1, 2)))
    console.print(f"\nFull log saved to: {log_filename}", style="dim")


def _print_dry_run(console: Console, result: SyncResult) -> None:
    """Print a table of assets that would be uploaded."""
    if not result.check.new:
        return
    table = Table(title="Assets to upload (dry run)", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Album", style="dim")

    for i, asset in enumerate(result.check.new, 1):
        table.add_row(str(i), str(asset.path), format_size(asset.file_size), asset.album_name)

    console.print()
    console.print(table)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)

    # ── console setup ────────────────────────────────────────────────
    use_color = sys.stdout.isatty() and not args.no_color and not os.getenv("NO_COLOR")
    console = Console(force_terminal=use_color, no_color=not use_color)

    # ── logging setup ────────────────────────────────────────────────
    os.makedirs(LOG_DIR, exist_ok=True)
    log_filename = os.path.join(
        LOG_DIR, f"sync_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    )
    _setup_logging(args.verbose, console, log_filename)
    logging.info("Log file: %s", log_filename)

    # ── options & client ─────────────────────────────────────────────
    try:
        options = options_from_args(args)
    except ConfigError as e:
        logging.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    client = AssetServerClient(options.base_url, options.api_key)
    if options.dry_run:
        logging.info("Dry-run mode: nothing will be uploaded and no albums will be changed.")
    else:
        console.print(Panel(f"Upload to {options.base_url}", style="bold blue", padding=(0, 2)))

    engine = SyncEngine(options, client, console=console if use_color else None)

    # ── run sync ─────────────────────────────────────────────────────
    start = time.monotonic()
    try:
        result = engine.run()
    except ConfigError as e:
        logging.error("%s", e)
        return EXIT_CONFIG_ERROR
    except OSError as e:
        logging.error("Cannot read %s: %s", getattr(e, "filename", None) or "input folder", e)
        return EXIT_DISCOVERY_ERROR
    elapsed = time.monotonic() - start

    for line in result.summary().splitlines():
        logging.info("%s", line)
    if result.dry_run:
        _print_dry_run(console, result)
    _print_summary(console, result, elapsed, log_filename)

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
