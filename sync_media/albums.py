"""Album reconciler – creates missing albums and files uploaded assets into them."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rich.progress import Progress

from sync_media.assets import Asset
from sync_media.clients.server import AssetServerClient
from sync_media.workers import WorkerPool, chunked

logger = logging.getLogger(__name__)

ASSETS_PER_CONCURRENCY_UNIT = 1000
MAX_ALBUM_BATCH = 65000  # server-side ceiling on ids per add-to-album call


def album_batch_size(concurrency: int) -> int:
    return min(ASSETS_PER_CONCURRENCY_UNIT * concurrency, MAX_ALBUM_BATCH)


@dataclass
class AlbumResult:
    created_album_count: int = 0
    updated_asset_count: int = 0
    failed_albums: int = 0
    failed_batches: int = 0


class AlbumReconciler:
    """Makes sure every synced asset sits in the album its path (or the override) names.

    The updated-asset count reflects the eligible assets, not confirmed adds:
    a failed assignment batch is logged and counted in ``failed_batches`` only.
    """

    def __init__(
        self,
        client: AssetServerClient,
        concurrency: int,
        album_name: str = "",
        dry_run: bool = False,
        progress: Progress | None = None,
        log: logging.Logger | None = None,
    ):
        self._client = client
        self._concurrency = concurrency
        self._pool = WorkerPool(concurrency, progress)
        self._album_name = album_name
        self._dry_run = dry_run
        self._log = log or logger

    # ── public API ───────────────────────────────────────────────────

    def reconcile(self, assets: list[Asset]) -> AlbumResult:
        if self._album_name:
            for asset in assets:
                asset.album_name = self._album_name

        albums = self.fetch_albums()
        eligible = [a for a in assets if a.album_name and a.remote_id]

        new_albums = list(dict.fromkeys(a.album_name for a in eligible if a.album_name not in albums))

        result = AlbumResult(
            created_album_count=len(new_albums),
            updated_asset_count=len(eligible),
        )
        if self._dry_run:
            return result

        result.failed_albums = self._create_albums(new_albums, albums)
        result.failed_batches = self._assign(eligible, albums)
        return result

    def fetch_albums(self) -> dict[str, str]:
        """Return a name -> id mapping; the first album wins when names repeat."""
        mapping: dict[str, str] = {}
        for album in self._client.list_albums():
            name = album.get("albumName")
            if name and album.get("id"):
                mapping.setdefault(name, album["id"])
        return mapping

    # ── internals ────────────────────────────────────────────────────

    def _create_albums(self, names: list[str], albums: dict[str, str]) -> int:
        failed = 0
        for batch in chunked(names, self._concurrency):
            outcomes = self._pool.map(self._client.create_album, batch, description="Creating albums")
            for outcome in outcomes:
                if outcome.ok:
                    albums[outcome.item] = outcome.value
                    self._log.info("Created album: %s", outcome.item)
                else:
                    failed += 1
                    self._log.error("Failed to create album %s: %s", outcome.item, outcome.error)
        return failed

    def _assign(self, assets: list[Asset], albums: dict[str, str]) -> int:
        by_album: dict[str, list[str]] = {}
        for asset in assets:
            album_id = albums.get(asset.album_name)
            if album_id is None:
                self._log.warning("No album for %s (%s), not adding", asset.path, asset.album_name)
                continue
            by_album.setdefault(album_id, []).append(asset.remote_id)

        names = {album_id: name for name, album_id in albums.items()}
        batch_size = album_batch_size(self._concurrency)
        failed = 0
        for album_id, asset_ids in by_album.items():
            for batch in chunked(asset_ids, batch_size):
                try:
                    self._client.add_assets_to_album(album_id, batch)
                except Exception as exc:
                    failed += 1
                    self._log.error(
                        "Failed to add %d asset(s) to album %s: %s",
                        len(batch), names.get(album_id, album_id), exc,
                    )
                    continue
                self._log.info("Added %d asset(s) to album %s", len(batch), names.get(album_id, album_id))
        return failed
