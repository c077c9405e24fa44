from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from sync_media.assets import Asset, AssetStateError, AssetStatus, prepare_asset
from sync_media.uploader import Uploader, build_upload_form, read_sidecar, sidecar_path


def _new_asset(path: Path, data: bytes) -> Asset:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    asset = prepare_asset(path, [path.parent])
    asset.mark(AssetStatus.NEW)
    return asset


def test_dry_run_returns_bytes_and_sends_nothing(tmp_path: Path, server):
    assets = [
        _new_asset(tmp_path / "a.jpg", b"x" * 100),
        _new_asset(tmp_path / "b.jpg", b"y" * 250),
        _new_asset(tmp_path / "c.jpg", b""),
    ]

    total = Uploader(server, concurrency=2, dry_run=True).upload(assets)

    assert total == 350
    assert server.upload_calls == []
    assert all(a.status is AssetStatus.NEW for a in assets)


def test_upload_assigns_remote_id_and_status(tmp_path: Path, server):
    assets = [_new_asset(tmp_path / f"{i}.jpg", f"data-{i}".encode()) for i in range(5)]

    uploaded = Uploader(server, concurrency=3).upload(assets)

    assert uploaded == 5
    assert len(server.upload_calls) == 5
    assert all(a.status is AssetStatus.UPLOADED for a in assets)
    assert len({a.remote_id for a in assets}) == 5
    assert all(a.upload_error is None for a in assets)


def test_failed_upload_is_isolated(tmp_path: Path, server):
    assets = [_new_asset(tmp_path / f"{i}.jpg", f"data-{i}".encode()) for i in range(4)]
    server.fail_upload_for.add("2.jpg")

    uploaded = Uploader(server, concurrency=2).upload(assets)

    assert uploaded == 3
    failed = [a for a in assets if a.upload_error is not None]
    assert [a.path.name for a in failed] == ["2.jpg"]
    assert failed[0].remote_id is None
    assert failed[0].status is AssetStatus.NEW
    assert "HTTP 400" in failed[0].upload_error
    assert sum(a.status is AssetStatus.UPLOADED for a in assets) == uploaded


def test_only_new_assets_can_be_uploaded(tmp_path: Path, server):
    asset = prepare_asset(_write(tmp_path / "a.jpg"), [tmp_path])
    asset.mark(AssetStatus.DUPLICATE)

    with pytest.raises(AssetStateError):
        Uploader(server, concurrency=1).upload([asset])
    assert server.upload_calls == []


def test_form_fields(tmp_path: Path):
    asset = _new_asset(tmp_path / "IMG 1.jpg", b"12345")
    asset.file_created_at = datetime(2022, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    asset.file_modified_at = datetime(2022, 1, 2, 3, 4, 6, tzinfo=timezone.utc)

    form = build_upload_form(asset)

    assert form.fields() == {
        "deviceAssetId": "IMG1.jpg-5",
        "deviceId": "CLI",
        "fileCreatedAt": "2022-01-02T03:04:05.000Z",
        "fileModifiedAt": "2022-01-02T03:04:06.000Z",
        "isFavorite": "false",
    }
    assert form.asset_path == asset.path
    assert form.sidecar_data is None


def test_form_rejects_missing_device_id(tmp_path: Path):
    asset = _new_asset(tmp_path / "a.jpg", b"1")
    asset.device_asset_id = ""

    with pytest.raises(AssetStateError):
        build_upload_form(asset)


def test_sidecar_is_attached_when_present(tmp_path: Path, server):
    asset = _new_asset(tmp_path / "a.jpg", b"photo")
    sidecar_path(asset.path).write_bytes(b"<x:xmpmeta/>")

    form = build_upload_form(asset)
    assert form.sidecar_name == "a.jpg.xmp"
    assert form.sidecar_data == b"<x:xmpmeta/>"

    Uploader(server, concurrency=1).upload([asset])
    assert server.upload_calls[0].sidecar_data == b"<x:xmpmeta/>"


def test_read_sidecar_absent(tmp_path: Path):
    assert read_sidecar(_write(tmp_path / "a.jpg")) is None


def test_vanished_file_fails_only_that_asset(tmp_path: Path, server):
    keep = _new_asset(tmp_path / "keep.jpg", b"keep")
    gone = _new_asset(tmp_path / "gone.jpg", b"gone")
    gone.path.unlink()

    uploaded = Uploader(server, concurrency=2).upload([keep, gone])

    assert uploaded == 1
    assert keep.status is AssetStatus.UPLOADED
    assert gone.upload_error is not None


def _write(path: Path) -> Path:
    path.write_bytes(b"data")
    return path
