"""Input validation helpers for path segments and version labels."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Optional

from handoff.errors import PathSafetyError, ValidationError


_RESERVED_CHARS = set('<>:"|?*')
_DRIVE_PATTERN = re.compile(r"^[a-zA-Z]:")
PROJECT_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def ensure_safe_segment(value: Optional[str], label: str) -> str:
    """Validate a single untrusted folder-name segment and return it trimmed."""
    if value is None or not value.strip():
        raise PathSafetyError(f"{label} is empty.")
    segment = value.strip()
    if segment in {".", ".."}:
        raise PathSafetyError(f"{label} must not be a relative traversal segment.")
    if "/" in segment or "\\" in segment:
        raise PathSafetyError(f"{label} must not contain path separators.")
    for ch in segment:
        if ch in _RESERVED_CHARS or ord(ch) < 32:
            raise PathSafetyError(f"{label} contains invalid characters.")
    return segment


def ensure_safe_relative_path(value: Optional[str], label: str) -> str:
    """Validate a relative path (multiple segments) and return it trimmed."""
    if value is None or not value.strip():
        raise PathSafetyError(f"{label} is empty.")
    text = value.strip()
    if text.startswith(("/", "\\")) or _DRIVE_PATTERN.match(text):
        raise PathSafetyError(f"{label} must be a relative path.")
    if PurePosixPath(text).is_absolute() or PureWindowsPath(text).is_absolute():
        raise PathSafetyError(f"{label} must be a relative path.")
    for part in re.split(r"[\\/]", text):
        if part.strip() == "..":
            raise PathSafetyError(f"{label} must not contain '..'.")
    return text


def validate_project_id(project_id: str) -> None:
    if not PROJECT_ID_PATTERN.match(project_id or ""):
        raise ValidationError(f"Invalid project_id format: {project_id}")


def is_version_folder_name(name: Optional[str]) -> bool:
    return parse_version_number(name) > 0


def parse_version_number(name: Optional[str]) -> int:
    """Return N for a 'vN' label, or 0 when the label is malformed."""
    if not name:
        return 0
    text = name.strip()
    if len(text) < 2 or text[0] not in ("v", "V"):
        return 0
    digits = text[1:]
    if not (digits.isascii() and digits.isdigit()):
        return 0
    return int(digits)


def normalize_version_label(label: Optional[str]) -> Optional[str]:
    if label is None or not label.strip():
        return None
    text = label.strip()
    if text[0] == "V":
        return "v" + text[1:]
    return text


def is_within(parent: Path, child: Path) -> bool:
    parent = parent.resolve()
    child = child.resolve()
    return parent == child or parent in child.parents
