"""Version planning: decide between reusing the latest delivery and allocating ``v(N+1)``.

Two variants exist on purpose:

- :func:`plan_from_filesystem` enumerates real ``vN`` folders under the stable
  root and compares their contents with the new file set.
- :func:`plan_from_history` cannot list the remote tree, so it trusts the last
  recorded file set and version label from project metadata.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from handoff.core.fingerprint import FingerprintSet
from handoff.core.models import DeliverableFile, DeliveryHistory, VersionPlan
from handoff.core.paths import combine_remote_path
from handoff.core.validation import is_version_folder_name, normalize_version_label, parse_version_number
from handoff.infrastructure.scanner import DeliverableScanner

logger = logging.getLogger(__name__)


def version_label(number: int) -> str:
    if number <= 0:
        raise ValueError(f"Version number must be positive: {number}")
    return f"v{number}"


def find_version_folders(stable_root: Path) -> list[tuple[int, Path]]:
    """Return ``(number, path)`` for valid version folders, highest first.

    Malformed names are ignored entirely.
    """
    if not stable_root.is_dir():
        return []
    folders = []
    for entry in stable_root.iterdir():
        if not entry.is_dir() or entry.is_symlink():
            continue
        number = parse_version_number(entry.name)
        if number > 0:
            folders.append((number, entry))
    folders.sort(key=lambda item: (-item[0], item[1].name))
    return folders


def plan_from_filesystem(
    stable_root: Path,
    new_files: Iterable[DeliverableFile],
    scanner: DeliverableScanner,
) -> VersionPlan:
    new_set = FingerprintSet.from_files(new_files)
    version_folders = find_version_folders(stable_root)

    def _skip_version_dirs(path: Path) -> bool:
        return path.parent == stable_root and is_version_folder_name(path.name)

    legacy_set = FingerprintSet.from_files(scanner.iter_files(stable_root, skip_dir=_skip_version_dirs))
    legacy_detected = len(legacy_set) > 0

    if version_folders:
        latest_number, latest_path = version_folders[0]
        latest_set = FingerprintSet.from_files(scanner.iter_files(latest_path))
        if len(new_set) > 0 and len(latest_set) > 0 and new_set.matches(latest_set):
            logger.info("Reusing delivery version %s", latest_path.name)
            return VersionPlan(
                version_label=latest_path.name,
                stable_root=str(stable_root),
                version_root=str(latest_path),
                is_new_version=False,
                legacy_files_detected=legacy_detected,
            )
        label = version_label(latest_number + 1)
        logger.info("Allocating delivery version %s (latest was %s)", label, latest_path.name)
        return VersionPlan(
            version_label=label,
            stable_root=str(stable_root),
            version_root=str(stable_root / label),
            is_new_version=True,
            legacy_files_detected=legacy_detected,
        )

    if legacy_detected and len(new_set) > 0 and new_set.matches(legacy_set):
        logger.info("Legacy files under %s match the new file set; treating as v1", stable_root)
        return VersionPlan(
            version_label="v1",
            stable_root=str(stable_root),
            version_root=str(stable_root),
            is_new_version=False,
            legacy_files_detected=True,
        )

    return VersionPlan(
        version_label="v1",
        stable_root=str(stable_root),
        version_root=str(stable_root / "v1"),
        is_new_version=True,
        legacy_files_detected=legacy_detected,
    )


def plan_from_history(
    stable_path: str,
    history: DeliveryHistory,
    new_files: Iterable[DeliverableFile],
) -> VersionPlan:
    new_set = FingerprintSet.from_files(new_files)
    history_set = FingerprintSet.from_files(history.last_files)
    current = normalize_version_label(history.current_version)

    if len(history_set) > 0 and len(new_set) > 0 and new_set.matches(history_set):
        label = current if is_version_folder_name(current) else "v1"
        logger.info("Recorded history matches; reusing remote version %s", label)
        return VersionPlan(label, stable_path, combine_remote_path(stable_path, label), False, False)

    if current is None:
        return VersionPlan("v1", stable_path, combine_remote_path(stable_path, "v1"), True, False)

    number = parse_version_number(current)
    label = version_label(number + 1 if number > 0 else 2)
    logger.info("Recorded history differs; allocating remote version %s", label)
    return VersionPlan(label, stable_path, combine_remote_path(stable_path, label), True, False)
