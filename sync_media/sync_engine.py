"""Sync engine – crawls local folders, checks them against the server, uploads and files into albums."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)

from sync_media.albums import AlbumReconciler, AlbumResult
from sync_media.assets import Asset, AssetPreparer, AssetStatus
from sync_media.clients.server import AssetServerClient, ServerError
from sync_media.config import ConfigError, SyncOptions
from sync_media.crawler import PathCrawler
from sync_media.dedup import CheckResult, DedupClassifier
from sync_media.uploader import Uploader

logger = logging.getLogger(__name__)


def format_size(num_bytes: int) -> str:
    """Return a human-readable file size string."""
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(num_bytes) < 1024:
            return f"{num_bytes:.1f} {unit}" if unit != "B" else f"{num_bytes} {unit}"
        num_bytes /= 1024  # type: ignore[assignment]
    return f"{num_bytes:.1f} PB"


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


@dataclass
class SyncResult:
    """Aggregated result of a sync run."""

    dry_run: bool = False
    found: int = 0
    assets: list[Asset] = field(default_factory=list)
    check: CheckResult = field(default_factory=CheckResult)
    uploaded: int = 0
    total_bytes: int = 0
    albums: AlbumResult | None = None

    @property
    def failed_uploads(self) -> list[Asset]:
        return [a for a in self.check.new if a.upload_error is not None]

    @property
    def all_ok(self) -> bool:
        return not self.failed_uploads and not self.check.dropped

    def summary(self) -> str:
        prefix = "Would have" if self.dry_run else "Successfully"
        new = len(self.check.new)
        lines = [f"Found {plural(self.found, 'asset')}"]
        if new == 0:
            lines.append("All assets were already uploaded, nothing to do.")
        elif self.dry_run:
            lines.append(f"{prefix} uploaded {plural(new, 'asset')} ({format_size(self.total_bytes)})")
        else:
            lines.append(f"{prefix} uploaded {plural(self.uploaded, 'asset')} of {new}")
        lines.append(f"Duplicates  : {len(self.check.duplicate)}")
        lines.append(f"Rejected    : {len(self.check.rejected)}")
        if self.check.dropped:
            lines.append(f"Not checked : {len(self.check.dropped)}")
        if self.albums is not None:
            lines.append(f"{prefix} created {plural(self.albums.created_album_count, 'new album')}")
            lines.append(f"{prefix} updated {plural(self.albums.updated_asset_count, 'asset')}")
        return "\n".join(lines)


class SyncEngine:
    """Runs the full pipeline once: crawl, prepare, check, upload, reconcile albums.

    Stages run one after another; each stage finishes for every asset before
    the next one starts. Per-item failures are logged and isolated, only
    configuration and discovery errors escape ``run``.
    """

    def __init__(
        self,
        options: SyncOptions,
        client: AssetServerClient,
        console: Console | None = None,
        log: logging.Logger | None = None,
    ):
        self._options = options
        self._client = client
        self._console = console
        self._log = log or logger

    # ── public API ───────────────────────────────────────────────────

    def run(self) -> SyncResult:
        opts = self._options
        result = SyncResult(dry_run=opts.dry_run)

        extensions = self._supported_extensions()
        self._log.info("Crawling for assets...")
        crawler = PathCrawler(
            extensions,
            recursive=opts.recursive,
            include_hidden=opts.include_hidden,
            ignore_unreadable=opts.ignore_unreadable,
            log=self._log,
        )
        paths = crawler.crawl(opts.paths)
        result.found = len(paths)
        if not paths:
            self._log.info("No assets found, exiting")
            return result
        self._log.info("Found %s", plural(len(paths), "file"))

        with self._progress() as progress:
            preparer = AssetPreparer(opts.paths, opts.concurrency, progress=progress, log=self._log)
            result.assets = preparer.prepare_all(paths)

            classifier = DedupClassifier(
                self._client,
                opts.concurrency,
                skip_hash=opts.skip_hash,
                progress=progress,
                log=self._log,
            )
            result.check = classifier.classify(result.assets)

            uploader = Uploader(
                self._client, opts.concurrency, dry_run=opts.dry_run, progress=progress, log=self._log
            )
            if opts.dry_run:
                result.total_bytes = uploader.upload(result.check.new)
            else:
                result.uploaded = uploader.upload(result.check.new)
                result.total_bytes = sum(
                    a.file_size for a in result.check.new if a.status is AssetStatus.UPLOADED
                )

            if opts.wants_albums:
                reconciler = AlbumReconciler(
                    self._client,
                    opts.concurrency,
                    album_name=opts.album_name,
                    dry_run=opts.dry_run,
                    progress=progress,
                    log=self._log,
                )
                result.albums = self._reconcile(reconciler, result.check)

        return result

    # ── stages ───────────────────────────────────────────────────────

    def _supported_extensions(self) -> set[str]:
        try:
            types = self._client.get_supported_media_types()
        except ServerError as exc:
            raise ConfigError(f"Cannot talk to server at {self._client.base_url}: {exc}") from exc
        extensions = set(types["image"]) | set(types["video"])
        self._log.debug("Server accepts %d extension(s)", len(extensions))
        return extensions

    def _reconcile(self, reconciler: AlbumReconciler, check: CheckResult) -> AlbumResult | None:
        try:
            return reconciler.reconcile(check.new + check.duplicate)
        except ServerError as exc:
            self._log.error("Album update skipped, could not list albums: %s", exc)
            return None

    def _progress(self):
        if self._console is None:
            return nullcontext(None)
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=self._console,
        )
