"""Filesystem scanner for deliverable media files."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
import os
from pathlib import Path
from typing import Callable, Optional

from handoff.core.models import DeliverableFile
from handoff.settings import DEFAULT_ALLOWED_EXTENSIONS


IGNORED_PREFIX = "._"
IGNORED_NAMES = {".ds_store"}
TRANSIENT_SUFFIX = ".tmp"


def is_ignored_file_name(name: str) -> bool:
    if not name:
        return True
    if name.startswith(IGNORED_PREFIX):
        return True
    if name.lower() in IGNORED_NAMES:
        return True
    return name.lower().endswith(TRANSIENT_SUFFIX)


class DeliverableScanner:
    """Walks a directory tree and yields deliverable files.

    Symlink policy: do not follow symlinked directories and skip symlinked files.
    Ordering is deterministic (sorted by directory, then file name).
    """

    def __init__(self, extensions: Optional[frozenset[str]] = None) -> None:
        self.extensions = frozenset(ext.lower() for ext in (extensions or DEFAULT_ALLOWED_EXTENSIONS))

    def should_include(self, path: Path) -> bool:
        if is_ignored_file_name(path.name):
            return False
        return path.suffix.lower() in self.extensions

    def iter_files(
        self,
        root: Path,
        *,
        skip_dir: Optional[Callable[[Path], bool]] = None,
    ) -> Iterator[DeliverableFile]:
        """Yield deliverables under ``root`` with paths relative to it.

        Args:
            root: Directory to walk
            skip_dir: Predicate for subdirectories to prune from the walk
        """
        if not root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
            directory = Path(dirpath)
            if skip_dir is not None:
                dirnames[:] = [name for name in dirnames if not skip_dir(directory / name)]
            dirnames.sort()
            filenames.sort()
            for name in filenames:
                file_path = directory / name
                if file_path.is_symlink() or not file_path.is_file():
                    continue
                if not self.should_include(file_path):
                    continue
                yield self._describe(root, file_path)

    def collect(self, root: Path, **kwargs) -> list[DeliverableFile]:
        return list(self.iter_files(root, **kwargs))

    @staticmethod
    def _describe(root: Path, file_path: Path) -> DeliverableFile:
        stat = file_path.stat()
        relative = file_path.relative_to(root).as_posix()
        return DeliverableFile(
            source_path=file_path,
            relative_path=relative,
            size_bytes=stat.st_size,
            last_modified_utc=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
