"""Guarded deletion of test-run delivery containers."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import time
from typing import Callable, Optional

from handoff.core.paths import TEST_RUNS_FOLDER

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF = (0.1, 0.25, 0.5, 1.0, 2.0)


@dataclass(frozen=True)
class CleanupResult:
    success: bool
    error: Optional[str] = None


def validate_test_cleanup(root: Path, target: Path, allow_test_cleanup: bool) -> Optional[str]:
    """Return an error message when deleting ``target`` is not allowed."""
    if not target.exists():
        return None
    if not allow_test_cleanup:
        return "Test target exists; set allowTestCleanup=true to delete and re-run."
    root_full = Path(os.path.abspath(root))
    target_full = Path(os.path.abspath(target))
    try:
        relative = target_full.relative_to(root_full)
    except ValueError:
        return "Test cleanup blocked because target is outside the configured root."
    if not relative.parts or relative.parts[0].lower() != TEST_RUNS_FOLDER.lower():
        return f"Test cleanup blocked because target is not under {TEST_RUNS_FOLDER}."
    return None


def delete_with_retry(
    target: Path,
    *,
    delete_fn: Optional[Callable[[Path], None]] = None,
    sleep_fn: Optional[Callable[[float], None]] = None,
    backoff: tuple[float, ...] = DEFAULT_BACKOFF,
) -> CleanupResult:
    delete_fn = delete_fn or shutil.rmtree
    sleep_fn = sleep_fn or time.sleep
    last_error: Optional[OSError] = None
    for delay in backoff:
        try:
            delete_fn(target)
            logger.info("Deleted test delivery container %s", target)
            return CleanupResult(True)
        except OSError as exc:
            last_error = exc
            logger.debug("Cleanup of %s failed (%s); retrying in %.2fs", target, exc, delay)
            sleep_fn(delay)
    message = str(last_error) if last_error else "Cleanup failed due to an unknown error."
    return CleanupResult(False, f"{message} (locked; cleanup skipped)")
