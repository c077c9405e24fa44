"""Dedup classifier – asks the server which local assets it already has."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rich.progress import Progress

from sync_media.assets import Asset, AssetStatus, compute_sha1
from sync_media.clients.server import AssetServerClient, CheckItem
from sync_media.workers import WorkerPool, chunked

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Partition of the checked assets. Every input asset lands in exactly one list."""

    new: list[Asset] = field(default_factory=list)
    duplicate: list[Asset] = field(default_factory=list)
    rejected: list[Asset] = field(default_factory=list)
    dropped: list[Asset] = field(default_factory=list)


@dataclass
class ChunkChecked:
    assets: list[Asset]
    items: list[CheckItem]


@dataclass
class ChunkFailed:
    assets: list[Asset]
    reason: str


class DedupClassifier:
    """Hashes assets and classifies them as new, duplicate or rejected via bulk-check.

    Work is split into chunks of *chunk_size* assets; each chunk is one remote
    call and chunks run concurrently on the worker pool. A chunk whose call
    fails is reported as dropped and does not affect other chunks.
    """

    def __init__(
        self,
        client: AssetServerClient,
        concurrency: int,
        chunk_size: int | None = None,
        skip_hash: bool = False,
        progress: Progress | None = None,
        log: logging.Logger | None = None,
    ):
        self._client = client
        self._pool = WorkerPool(concurrency, progress)
        self._chunk_size = chunk_size or concurrency
        self._skip_hash = skip_hash
        self._log = log or logger

    # ── public API ───────────────────────────────────────────────────

    def classify(self, assets: list[Asset]) -> CheckResult:
        result = CheckResult()
        if self._skip_hash:
            self._log.info("Skipping duplicate check, treating %d asset(s) as new.", len(assets))
            for asset in assets:
                asset.mark(AssetStatus.NEW)
                result.new.append(asset)
            return result

        chunks = chunked(assets, self._chunk_size)
        outcomes = self._pool.map(self.check_chunk, chunks, description="Checking assets")
        for outcome in outcomes:
            chunk_result = outcome.value if outcome.ok else ChunkFailed(outcome.item, str(outcome.error))
            self._apply(chunk_result, result)

        self._log.info(
            "Check complete: %d new, %d duplicate, %d rejected, %d dropped",
            len(result.new), len(result.duplicate), len(result.rejected), len(result.dropped),
        )
        return result

    def check_chunk(self, chunk: list[Asset]) -> ChunkChecked | ChunkFailed:
        """Hash every asset in *chunk* and submit them in a single bulk-check call."""
        try:
            for asset in chunk:
                if asset.content_hash is None:
                    asset.content_hash = compute_sha1(asset.path)
            items = self._client.bulk_upload_check(
                [(str(asset.path), asset.content_hash) for asset in chunk]
            )
        except Exception as exc:
            return ChunkFailed(chunk, f"{type(exc).__name__}: {exc}")

        if len(items) != len(chunk):
            return ChunkFailed(
                chunk, f"server returned {len(items)} result(s) for {len(chunk)} asset(s)"
            )
        return ChunkChecked(chunk, items)

    # ── internals ────────────────────────────────────────────────────

    def _apply(self, chunk_result: ChunkChecked | ChunkFailed, result: CheckResult) -> None:
        if isinstance(chunk_result, ChunkFailed):
            self._log.error(
                "Check failed for %d asset(s) starting at %s: %s",
                len(chunk_result.assets), chunk_result.assets[0].path, chunk_result.reason,
            )
            result.dropped.extend(chunk_result.assets)
            return

        for asset, item in zip(chunk_result.assets, chunk_result.items):
            if item.accepted:
                # The upload assigns the remote id for new assets.
                asset.mark(AssetStatus.NEW)
                result.new.append(asset)
                continue
            if item.asset_id:
                asset.assign_remote_id(item.asset_id)
            if item.duplicate:
                asset.mark(AssetStatus.DUPLICATE)
                result.duplicate.append(asset)
                self._log.debug("  Duplicate: %s", asset.path)
            else:
                asset.mark(AssetStatus.REJECTED)
                result.rejected.append(asset)
                self._log.warning("  Rejected (%s): %s", item.reason or "no reason", asset.path)
