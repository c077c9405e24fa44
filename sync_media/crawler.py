"""Path crawler – walks local roots and collects the media files worth syncing."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


def is_hidden(path: Path, st: os.stat_result | None = None) -> bool:
    """True for dot-files/dot-dirs, and for entries flagged hidden on Windows."""
    if path.name.startswith("."):
        return True
    if st is None:
        try:
            st = path.stat()
        except OSError:
            return False
    return bool(getattr(st, "st_file_attributes", 0) & stat.FILE_ATTRIBUTE_HIDDEN)


class PathCrawler:
    """Collects files with an allowed extension under one or more roots.

    Hidden entries are skipped together with their whole subtree unless
    *include_hidden* is set. Directory symlinks are followed, but each physical
    directory is entered at most once, which also guards against link cycles.
    An unreadable directory raises, unless *ignore_unreadable* is set, in which
    case it is logged and skipped.
    """

    def __init__(
        self,
        allowed_extensions: Iterable[str],
        recursive: bool = True,
        include_hidden: bool = False,
        ignore_unreadable: bool = False,
        log: logging.Logger | None = None,
    ):
        self._extensions = {self._normalize_ext(e) for e in allowed_extensions if e}
        self._recursive = recursive
        self._include_hidden = include_hidden
        self._ignore_unreadable = ignore_unreadable
        self._log = log or logger

    @staticmethod
    def _normalize_ext(ext: str) -> str:
        ext = ext.lower()
        return ext if ext.startswith(".") else f".{ext}"

    def is_allowed(self, path: Path) -> bool:
        return path.suffix.lower() in self._extensions

    # ── public API ───────────────────────────────────────────────────

    def crawl(self, roots: Iterable[Path]) -> list[Path]:
        """Return absolute paths of every matching file under *roots*, each once."""
        found: list[Path] = []
        seen_files: set[Path] = set()
        visited_dirs: set[tuple[int, int]] = set()

        for root in roots:
            root = Path(root).absolute()
            if root.is_file():
                # Explicit file arguments are taken as-is, never walked into.
                if self.is_allowed(root) and root not in seen_files:
                    seen_files.add(root)
                    found.append(root)
                continue
            self._log.info("Crawling %s", root)
            before = len(found)
            self._walk(root, found, seen_files, visited_dirs)
            self._log.debug("  %d file(s) under %s", len(found) - before, root)

        return found

    # ── traversal ────────────────────────────────────────────────────

    def _walk(
        self,
        directory: Path,
        found: list[Path],
        seen_files: set[Path],
        visited_dirs: set[tuple[int, int]],
    ) -> None:
        try:
            dir_stat = directory.stat()
        except OSError:
            if not self._ignore_unreadable:
                raise
            self._log.warning("Cannot stat directory, skipping: %s", directory)
            return

        key = (dir_stat.st_dev, dir_stat.st_ino)
        if key in visited_dirs:
            self._log.debug("Already visited, skipping: %s", directory)
            return
        visited_dirs.add(key)

        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError:
            if not self._ignore_unreadable:
                raise
            self._log.warning("Cannot list directory, skipping: %s", directory)
            return

        subdirs: list[Path] = []
        for entry in entries:
            entry_path = Path(entry.path)
            try:
                entry_stat = entry.stat()
            except OSError:
                # Broken symlink or entry removed while listing.
                self._log.debug("Cannot stat entry, skipping: %s", entry_path)
                continue

            if not self._include_hidden and is_hidden(entry_path, entry_stat):
                continue

            if stat.S_ISDIR(entry_stat.st_mode):
                if self._recursive:
                    subdirs.append(entry_path)
            elif stat.S_ISREG(entry_stat.st_mode) and self.is_allowed(entry_path):
                if entry_path not in seen_files:
                    seen_files.add(entry_path)
                    found.append(entry_path)

        for sub in subdirs:
            self._walk(sub, found, seen_files, visited_dirs)
