from __future__ import annotations

from pathlib import Path

import pytest

from sync_media import cli


@pytest.fixture
def run_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, server, restore_root_logging):
    monkeypatch.chdir(tmp_path)
    for name in ("SYNC_SERVER_URL", "SYNC_API_KEY", "SYNC_CONCURRENCY", "SYNC_ALBUM_NAME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "AssetServerClient", lambda url, key: server)

    def _run(*argv: str) -> int:
        return cli.main(list(argv))

    return _run


def test_upload_with_albums(run_cli, media_tree: Path, server, tmp_path: Path):
    code = run_cli(str(media_tree), "--url", "http://nas/api", "--key", "k", "--album", "--no-color")

    assert code == cli.EXIT_OK
    assert len(server.upload_calls) == 4
    assert sorted(server.create_album_calls) == ["Trips", "Work", "library"]
    assert list((tmp_path / "logs").glob("sync_*.log"))


def test_dry_run(run_cli, media_tree: Path, server):
    code = run_cli(str(media_tree), "-u", "http://nas/api", "-k", "k", "--dry-run", "--album-name", "All")

    assert code == cli.EXIT_OK
    assert server.upload_calls == []
    assert server.create_album_calls == []


def test_missing_key_is_config_error(run_cli, media_tree: Path):
    assert run_cli(str(media_tree), "--url", "http://nas/api") == cli.EXIT_CONFIG_ERROR


def test_unreachable_server_is_config_error(run_cli, media_tree: Path, server):
    server.fail_media_types = True

    assert run_cli(str(media_tree), "-u", "http://nas/api", "-k", "k") == cli.EXIT_CONFIG_ERROR


def test_unreadable_root_is_discovery_error(run_cli, media_tree: Path, monkeypatch: pytest.MonkeyPatch):
    from sync_media import crawler as crawler_module

    def denied(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(crawler_module.os, "scandir", denied)

    assert run_cli(str(media_tree), "-u", "http://nas/api", "-k", "k") == cli.EXIT_DISCOVERY_ERROR


def test_env_provides_defaults(run_cli, media_tree: Path, server, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SYNC_SERVER_URL", "http://nas/api")
    monkeypatch.setenv("SYNC_API_KEY", "from-env")
    monkeypatch.setenv("SYNC_CONCURRENCY", "1")

    assert run_cli(str(media_tree), "--skip-hash") == cli.EXIT_OK
    assert server.check_calls == []
    assert len(server.upload_calls) == 4


def test_malformed_env_concurrency_is_config_error(run_cli, media_tree: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SYNC_CONCURRENCY", "many")

    with pytest.raises(SystemExit) as excinfo:
        run_cli(str(media_tree), "-u", "http://nas/api", "-k", "k")
    assert excinfo.value.code == cli.EXIT_CONFIG_ERROR


def test_item_failures_still_exit_ok(run_cli, media_tree: Path, server):
    server.fail_upload_for.add("slide.png")
    server.fail_check_for.add(str(media_tree / "cover.jpg"))

    code = run_cli(str(media_tree), "-u", "http://nas/api", "-k", "k", "-c", "1", "--album")

    assert code == cli.EXIT_OK
    assert sorted(f.asset_path.name for f in server.upload_calls) == ["beach.jpg", "hike.mp4", "slide.png"]
