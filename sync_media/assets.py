"""Assets – per-file identity, metadata and remote linkage, plus preparation and hashing."""

from __future__ import annotations

import enum
import hashlib
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from rich.progress import Progress

from sync_media.workers import WorkerPool

logger = logging.getLogger(__name__)

HASH_BLOCK_SIZE = 1024 * 1024


class AssetStateError(RuntimeError):
    """An asset was driven through the pipeline in a way its contract forbids."""


class AssetStatus(str, enum.Enum):
    PENDING = "pending"
    NEW = "new"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    UPLOADED = "uploaded"


_TRANSITIONS = {
    AssetStatus.PENDING: {AssetStatus.NEW, AssetStatus.DUPLICATE, AssetStatus.REJECTED},
    AssetStatus.NEW: {AssetStatus.UPLOADED},
    AssetStatus.DUPLICATE: set(),
    AssetStatus.REJECTED: set(),
    AssetStatus.UPLOADED: set(),
}


@dataclass(eq=False)
class Asset:
    """One media file under synchronization.

    Identity fields (device asset id, timestamps, size, album hint) are fixed
    at construction. Only ``content_hash``, ``remote_id`` and ``status`` change
    afterwards, each through its own setter.
    """

    path: Path
    device_asset_id: str
    file_created_at: datetime
    file_modified_at: datetime
    file_size: int
    album_name: str = ""
    content_hash: str | None = None
    remote_id: str | None = None
    status: AssetStatus = AssetStatus.PENDING
    upload_error: str | None = None

    @property
    def name(self) -> str:
        return self.path.name

    def mark(self, status: AssetStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise AssetStateError(
                f"{self.path}: illegal status change {self.status.value} -> {status.value}"
            )
        self.status = status

    def assign_remote_id(self, remote_id: str) -> None:
        if self.remote_id is not None and self.remote_id != remote_id:
            raise AssetStateError(
                f"{self.path}: remote id already set to {self.remote_id}, refusing {remote_id}"
            )
        self.remote_id = remote_id


# ── identity & metadata ─────────────────────────────────────────────


def make_device_asset_id(file_name: str, file_size: int) -> str:
    """Return the per-device id: ``<name>-<size>`` with all spaces removed."""
    return f"{file_name}-{file_size}".replace(" ", "")


def derive_album_name(path: Path, roots: Sequence[Path] = ()) -> str:
    """Name of the directory directly under the scan root that contains *path*.

    Files sitting directly in a root take the root's own name. Paths outside
    every root (file arguments) fall back to their parent directory's name.
    The deepest matching root wins when roots are nested.
    """
    best: Path | None = None
    for root in roots:
        if root != path and path.is_relative_to(root):
            if best is None or len(root.parts) > len(best.parts):
                best = root
    if best is None:
        return path.parent.name

    rel = path.relative_to(best)
    if len(rel.parts) > 1:
        return rel.parts[0]
    return best.name


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-05-01T10:00:00.123Z."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def prepare_asset(path: Path, roots: Sequence[Path] = ()) -> Asset:
    """Read filesystem metadata for *path* and build its Asset. No network access."""
    st = path.stat()
    # Creation time is unreliable across platforms, last-write time is used for both.
    modified = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
    return Asset(
        path=path,
        device_asset_id=make_device_asset_id(path.name, st.st_size),
        file_created_at=modified,
        file_modified_at=modified,
        file_size=st.st_size,
        album_name=derive_album_name(path, roots),
    )


def compute_sha1(path: Path) -> str:
    """Stream *path* through SHA-1 and return the lowercase hex digest."""
    h = hashlib.sha1()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            h.update(block)
    return h.hexdigest()


# ── bulk preparation ────────────────────────────────────────────────


class AssetPreparer:
    """Builds Assets for many paths concurrently, dropping the ones that fail."""

    def __init__(
        self,
        roots: Sequence[Path],
        concurrency: int,
        progress: Progress | None = None,
        log: logging.Logger | None = None,
    ):
        self._roots = tuple(roots)
        self._pool = WorkerPool(concurrency, progress)
        self._log = log or logger

    def prepare(self, path: Path) -> Asset:
        return prepare_asset(path, self._roots)

    def prepare_all(self, paths: Iterable[Path]) -> list[Asset]:
        outcomes = self._pool.map(self.prepare, paths, description="Preparing assets")
        assets: list[Asset] = []
        for outcome in outcomes:
            if outcome.ok:
                assets.append(outcome.value)
            else:
                self._log.warning("Skipping %s: %s", outcome.item, outcome.error)
        assets.sort(key=lambda a: str(a.path))
        return assets
