from __future__ import annotations

import hashlib
import logging
import threading
from pathlib import Path

import pytest

from sync_media.clients.server import CheckItem, ServerError, UploadForm


class FakeServer:
    """In-memory stand-in for AssetServerClient.

    Remembers uploaded checksums so a second check reports duplicates, and can
    be told to fail specific calls.
    """

    base_url = "http://fake.invalid/api"

    def __init__(self):
        self._lock = threading.Lock()
        self.image_types = [".jpg", ".jpeg", ".png", ".heic"]
        self.video_types = [".mp4", ".mov"]
        self.assets_by_checksum: dict[str, str] = {}
        self.rejected_suffixes: set[str] = set()
        self.fail_check_for: set[str] = set()
        self.fail_upload_for: set[str] = set()
        self.fail_album_create_for: set[str] = set()
        self.fail_album_add = False
        self.fail_media_types = False
        self.short_check_response = False
        self.accept_with_asset_id = False
        self.albums: list[dict] = []
        self.album_assets: dict[str, list[str]] = {}
        self.check_calls: list[list[tuple[str, str]]] = []
        self.upload_calls: list[UploadForm] = []
        self.create_album_calls: list[str] = []
        self.add_calls: list[tuple[str, list[str]]] = []
        self._next_id = 0

    def _new_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}-{self._next_id}"

    def get_supported_media_types(self):
        if self.fail_media_types:
            raise ServerError("connection refused")
        return {"image": list(self.image_types), "video": list(self.video_types)}

    def bulk_upload_check(self, items):
        with self._lock:
            self.check_calls.append(list(items))
            if any(ext_id in self.fail_check_for for ext_id, _ in items):
                raise ServerError("HTTP 500", status_code=500)
            results = []
            for ext_id, checksum in items:
                if Path(ext_id).suffix.lower() in self.rejected_suffixes:
                    results.append(CheckItem(ext_id, "reject", "unsupported-format"))
                elif checksum in self.assets_by_checksum:
                    results.append(
                        CheckItem(ext_id, "reject", "duplicate", self.assets_by_checksum[checksum])
                    )
                elif self.accept_with_asset_id:
                    results.append(CheckItem(ext_id, "accept", asset_id=self._new_id("pre")))
                else:
                    results.append(CheckItem(ext_id, "accept"))
            if self.short_check_response:
                results = results[:-1]
            return results

    def upload_asset(self, form: UploadForm) -> str:
        data = form.asset_path.read_bytes()
        with self._lock:
            self.upload_calls.append(form)
            if form.asset_path.name in self.fail_upload_for:
                raise ServerError("HTTP 400: bad asset", status_code=400, body="bad asset")
            asset_id = self._new_id("asset")
            self.assets_by_checksum[hashlib.sha1(data).hexdigest()] = asset_id
            return asset_id

    def list_albums(self):
        with self._lock:
            return [dict(a) for a in self.albums]

    def create_album(self, name: str) -> str:
        with self._lock:
            self.create_album_calls.append(name)
            if name in self.fail_album_create_for:
                raise ServerError(f"cannot create {name}", status_code=500)
            album_id = self._new_id("album")
            self.albums.append({"id": album_id, "albumName": name})
            return album_id

    def add_assets_to_album(self, album_id: str, asset_ids: list[str]) -> None:
        with self._lock:
            self.add_calls.append((album_id, list(asset_ids)))
            if self.fail_album_add:
                raise ServerError("HTTP 500", status_code=500)
            self.album_assets.setdefault(album_id, []).extend(asset_ids)

    def album_id(self, name: str) -> str:
        return next(a["id"] for a in self.albums if a["albumName"] == name)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def media_tree(tmp_path: Path) -> Path:
    """A small library: two albums plus a file at the top level."""
    root = tmp_path / "library"
    (root / "Trips" / "2023").mkdir(parents=True)
    (root / "Work").mkdir(parents=True)
    (root / "Trips" / "beach.jpg").write_bytes(b"beach" * 10)
    (root / "Trips" / "2023" / "hike.mp4").write_bytes(b"hike" * 20)
    (root / "Work" / "slide.png").write_bytes(b"slide" * 30)
    (root / "cover.jpg").write_bytes(b"cover" * 5)
    (root / "notes.txt").write_text("not media")
    return root


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
