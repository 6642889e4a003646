"""Fixed path conventions for delivered trees and remote path arithmetic."""

from __future__ import annotations

import os
from pathlib import Path
import re

from handoff.core.validation import is_version_folder_name


DELIVERABLES_SUFFIX = ("01_Deliverables", "Final")
ADMIN_MANIFEST_SUFFIX = ("00_Admin", ".mgf", "manifest")
DELIVERY_MANIFEST_NAME = "delivery_manifest.json"
FOLDER_MANIFEST_NAME = "folder_manifest.json"
TEST_RUNS_FOLDER = "99_TestRuns"
DEFAULT_CLIENT_FOLDER = "Client"

_SEPARATORS = re.compile(r"[\\/]")


def split_path_segments(path: str) -> list[str]:
    return [part.strip() for part in _SEPARATORS.split(path or "") if part.strip()]


def combine_remote_path(*segments: str) -> str:
    """Join segments into a normalized absolute remote path (``/a/b/c``)."""
    parts: list[str] = []
    for segment in segments:
        if not segment:
            continue
        parts.extend(split_path_segments(segment))
    return "/" + "/".join(parts)


def is_stable_share_path(path: str) -> bool:
    """The share target must never be a ``vN`` folder."""
    segments = split_path_segments(path)
    if not segments:
        return True
    return not is_version_folder_name(segments[-1])


def local_stable_root(container_root: Path) -> Path:
    return container_root.joinpath(*DELIVERABLES_SUFFIX)


def local_manifest_path(container_root: Path, name: str = DELIVERY_MANIFEST_NAME) -> Path:
    return container_root.joinpath(*ADMIN_MANIFEST_SUFFIX, name)


def remote_manifest_path(container_root: str, name: str = DELIVERY_MANIFEST_NAME) -> str:
    return combine_remote_path(container_root, *ADMIN_MANIFEST_SUFFIX, name)


def local_container_root(
    dropbox_root: Path,
    delivery_relpath: str,
    client_folder: str,
    project_folder: str,
    *,
    test_mode: bool,
) -> Path:
    base = dropbox_root / TEST_RUNS_FOLDER if test_mode else dropbox_root
    return base.joinpath(*split_path_segments(delivery_relpath), client_folder, project_folder)


def api_path_from_local_root(dropbox_root: Path, stable_path: Path) -> str:
    relative = os.path.relpath(os.path.abspath(stable_path), os.path.abspath(dropbox_root))
    if not relative or relative == "." or relative.startswith(".."):
        raise ValueError(f"Stable path is outside Dropbox root: {stable_path}")
    return combine_remote_path(relative)

