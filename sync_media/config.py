"""Run configuration – the validated option set shared by every pipeline stage."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_CONCURRENCY = 4


class ConfigError(ValueError):
    """Raised when the run cannot start because an option is missing or invalid."""


@dataclass(frozen=True)
class SyncOptions:
    paths: tuple[Path, ...]
    base_url: str
    api_key: str
    recursive: bool = True
    include_hidden: bool = False
    album: bool = False
    album_name: str = ""
    dry_run: bool = False
    skip_hash: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    ignore_unreadable: bool = False

    @property
    def wants_albums(self) -> bool:
        return self.album or bool(self.album_name)

    def validate(self) -> SyncOptions:
        """Return *self* if usable, raise ConfigError otherwise."""
        if not self.paths:
            raise ConfigError("At least one path is required.")
        for p in self.paths:
            if not p.exists():
                raise ConfigError(f"Path does not exist: {p}")

        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(
                f"Server URL must look like http(s)://host[:port]/api, got {self.base_url!r}"
            )
        if not self.api_key.strip():
            raise ConfigError("An API key is required (--key or SYNC_API_KEY).")
        if self.concurrency < 1:
            raise ConfigError(f"Concurrency must be a positive integer, got {self.concurrency}")
        return self


def options_from_args(args) -> SyncOptions:
    """Build validated SyncOptions from an argparse namespace."""
    return SyncOptions(
        paths=tuple(Path(os.path.expanduser(p)).resolve() for p in args.paths),
        base_url=(args.url or "").rstrip("/"),
        api_key=args.key or "",
        recursive=args.recursive,
        include_hidden=args.include_hidden,
        album=args.album,
        album_name=args.album_name or "",
        dry_run=args.dry_run,
        skip_hash=args.skip_hash,
        concurrency=args.concurrency,
        ignore_unreadable=args.ignore_unreadable,
    ).validate()
