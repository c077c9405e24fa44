"""Uploader – sends new assets to the server under bounded concurrency."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.progress import Progress

from sync_media.assets import Asset, AssetStateError, AssetStatus, format_timestamp
from sync_media.clients.server import AssetServerClient, UploadForm
from sync_media.workers import WorkerPool

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".xmp"


def sidecar_path(path: Path) -> Path:
    """``IMG_1.jpg`` -> ``IMG_1.jpg.xmp``."""
    return path.with_name(path.name + SIDECAR_SUFFIX)


def read_sidecar(path: Path) -> bytes | None:
    """Return the sidecar's bytes, or None when it is absent or unreadable."""
    candidate = sidecar_path(path)
    try:
        if candidate.is_file():
            return candidate.read_bytes()
    except OSError as exc:
        logger.debug("Ignoring unreadable sidecar %s: %s", candidate, exc)
    return None


def build_upload_form(asset: Asset) -> UploadForm:
    if not asset.device_asset_id:
        raise AssetStateError(f"{asset.path}: device asset id not set")
    if asset.file_created_at is None:
        raise AssetStateError(f"{asset.path}: file created at not set")
    if asset.file_modified_at is None:
        raise AssetStateError(f"{asset.path}: file modified at not set")

    sidecar = read_sidecar(asset.path)
    return UploadForm(
        device_asset_id=asset.device_asset_id,
        file_created_at=format_timestamp(asset.file_created_at),
        file_modified_at=format_timestamp(asset.file_modified_at),
        asset_path=asset.path,
        sidecar_name=sidecar_path(asset.path).name if sidecar is not None else None,
        sidecar_data=sidecar,
    )


class Uploader:
    """Uploads assets classified as new; failures are logged per asset, never retried."""

    def __init__(
        self,
        client: AssetServerClient,
        concurrency: int,
        dry_run: bool = False,
        progress: Progress | None = None,
        log: logging.Logger | None = None,
    ):
        self._client = client
        self._pool = WorkerPool(concurrency, progress)
        self._dry_run = dry_run
        self._log = log or logger

    def upload(self, assets: list[Asset]) -> int:
        """Upload *assets*.

        In dry-run mode nothing is sent and the return value is the number of
        bytes that would be transferred. Otherwise the return value is the
        number of assets uploaded successfully; per-asset outcomes are on each
        Asset (status ``UPLOADED`` or ``upload_error`` set).
        """
        if self._dry_run:
            return sum(a.file_size for a in assets)

        for asset in assets:
            if asset.status is not AssetStatus.NEW:
                raise AssetStateError(f"{asset.path}: only new assets can be uploaded, got {asset.status.value}")

        outcomes = self._pool.map(self._upload_one, assets, description="Uploading assets")
        uploaded = 0
        for outcome in outcomes:
            asset: Asset = outcome.item
            if outcome.ok:
                uploaded += 1
                continue
            asset.upload_error = str(outcome.error)
            self._log.error("Upload failed: %s: %s", asset.path, outcome.error)
        return uploaded

    def _upload_one(self, asset: Asset) -> str:
        form = build_upload_form(asset)
        self._log.debug("Uploading %s (%d bytes)", asset.path, asset.file_size)
        remote_id = self._client.upload_asset(form)
        asset.assign_remote_id(remote_id)
        asset.mark(AssetStatus.UPLOADED)
        self._log.info("  OK  %s", asset.path)
        return remote_id
