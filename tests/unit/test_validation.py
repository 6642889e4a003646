"""Unit tests for path-safety and version-label validation."""

from __future__ import annotations

import pytest

from handoff.core.validation import (
    ensure_safe_relative_path,
    ensure_safe_segment,
    is_version_folder_name,
    normalize_version_label,
    parse_version_number,
    validate_project_id,
)
from handoff.errors import PathSafetyError, ValidationError


@pytest.mark.parametrize("value", ["", "   ", ".", "..", "a/b", "a\\b", "bad:name", "what?", "tab\there"])
def test_ensure_safe_segment_rejects_unsafe_values(value: str) -> None:
    with pytest.raises(PathSafetyError):
        ensure_safe_segment(value, "client folder name")


def test_ensure_safe_segment_trims() -> None:
    assert ensure_safe_segment("  Acme Films ", "client") == "Acme Films"


@pytest.mark.parametrize("value", ["/abs/path", "\\server\\share", "C:/work", "a/../b", ".."])
def test_ensure_safe_relative_path_rejects_escapes(value: str) -> None:
    with pytest.raises(PathSafetyError, match="relpath"):
        ensure_safe_relative_path(value, "relpath")


def test_ensure_safe_relative_path_accepts_nested() -> None:
    assert ensure_safe_relative_path(" 02_Projects/MGF25-0001 ", "relpath") == "02_Projects/MGF25-0001"


def test_path_safety_error_is_a_validation_error() -> None:
    assert issubclass(PathSafetyError, ValidationError)


@pytest.mark.parametrize(
    ("name", "expected"),
    [("v1", 1), ("V12", 12), ("v0", 0), ("v", 0), ("v1a", 0), ("x3", 0), (None, 0), ("v١", 0)],
)
def test_parse_version_number(name, expected: int) -> None:
    assert parse_version_number(name) == expected


def test_is_version_folder_name() -> None:
    assert is_version_folder_name("v3")
    assert not is_version_folder_name("Final")
    assert not is_version_folder_name("v0")


def test_normalize_version_label() -> None:
    assert normalize_version_label(" V4 ") == "v4"
    assert normalize_version_label("") is None


def test_validate_project_id() -> None:
    validate_project_id("prj_0001")
    with pytest.raises(ValidationError):
        validate_project_id("../etc")
