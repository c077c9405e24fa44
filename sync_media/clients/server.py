"""Asset server client – the HTTP calls the sync pipeline makes against the remote store."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60  # seconds, per call
DEVICE_ID = "CLI"


class ServerError(RuntimeError):
    """A remote call failed: transport error, non-2xx status, or unreadable body."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class UploadForm:
    """Everything that goes into one multipart upload request.

    String fields become plain form parts; the asset's bytes are streamed from
    *asset_path*; *sidecar_data* is attached as a second ``assetData`` part when set.
    """

    device_asset_id: str
    file_created_at: str
    file_modified_at: str
    asset_path: Path
    device_id: str = DEVICE_ID
    is_favorite: bool = False
    sidecar_name: str | None = None
    sidecar_data: bytes | None = None

    def fields(self) -> dict[str, str]:
        return {
            "deviceAssetId": self.device_asset_id,
            "deviceId": self.device_id,
            "fileCreatedAt": self.file_created_at,
            "fileModifiedAt": self.file_modified_at,
            "isFavorite": "true" if self.is_favorite else "false",
        }


@dataclass(frozen=True)
class CheckItem:
    """One entry of a bulk-upload-check response."""

    external_id: str
    action: str
    reason: str | None = None
    asset_id: str | None = None

    @property
    def accepted(self) -> bool:
        return self.action == "accept"

    @property
    def duplicate(self) -> bool:
        return self.reason == "duplicate"


class AssetServerClient:
    """Thin wrapper over the server's REST API.

    Every request carries the static API key header. Each worker thread gets
    its own ``requests.Session`` so connections are reused without sharing a
    session across threads.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        if not api_key:
            raise ValueError("api_key must not be empty")
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._local = threading.local()

    # ── plumbing ─────────────────────────────────────────────────────

    def _session(self) -> requests.Session:
        if not hasattr(self._local, "session"):
            session = requests.Session()
            session.headers.update({"x-api-key": self._api_key, "Accept": "application/json"})
            self._local.session = session
        return self._local.session

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            resp = self._session().request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise ServerError(f"{method} {url} failed: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise ServerError(
                f"{method} {url} returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
                body=resp.text,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ServerError(
                f"{method} {url} returned a non-JSON body",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc

    # ── server info ──────────────────────────────────────────────────

    def get_supported_media_types(self) -> dict[str, list[str]]:
        """Return ``{"image": [...], "video": [...]}`` extension lists."""
        data = self._request("GET", "/server-info/media-types") or {}
        return {
            "image": list(data.get("image", [])),
            "video": list(data.get("video", [])),
        }

    # ── assets ───────────────────────────────────────────────────────

    def bulk_upload_check(self, items: list[tuple[str, str]]) -> list[CheckItem]:
        """Ask the server which of ``(external_id, checksum)`` pairs it would accept."""
        body = {"assets": [{"id": ext_id, "checksum": checksum} for ext_id, checksum in items]}
        data = self._request("POST", "/asset/bulk-upload-check", json=body)
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise ServerError("bulk-upload-check response has no results list", body=str(data))
        return [
            CheckItem(
                external_id=r.get("id", ""),
                action=r.get("action", ""),
                reason=r.get("reason"),
                asset_id=r.get("assetId"),
            )
            for r in data["results"]
        ]

    def upload_asset(self, form: UploadForm) -> str:
        """Upload one asset as multipart/form-data and return the new remote id."""
        with open(form.asset_path, "rb") as fh:
            files = []
            if form.sidecar_data is not None:
                files.append(
                    ("assetData", (form.sidecar_name or "sidecar.xmp", form.sidecar_data, "application/xml"))
                )
            files.append(("assetData", (form.asset_path.name, fh, "application/octet-stream")))
            data = self._request("POST", "/asset/upload", data=form.fields(), files=files)

        if not isinstance(data, dict) or not data.get("id"):
            raise ServerError("upload response has no asset id", body=str(data))
        return data["id"]

    # ── albums ───────────────────────────────────────────────────────

    def list_albums(self) -> list[dict]:
        """Return all albums as ``[{"id": ..., "albumName": ...}, ...]``."""
        data = self._request("GET", "/album")
        return list(data or [])

    def create_album(self, name: str) -> str:
        data = self._request("POST", "/album", json={"albumName": name})
        if not isinstance(data, dict) or not data.get("id"):
            raise ServerError(f"create album {name!r} response has no id", body=str(data))
        return data["id"]

    def add_assets_to_album(self, album_id: str, asset_ids: list[str]) -> None:
        self._request("PUT", f"/album/{album_id}/assets", json={"ids": asset_ids})
