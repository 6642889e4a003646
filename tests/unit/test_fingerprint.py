"""Unit tests for fingerprint sets.

Contract: two sets are equal iff same cardinality and identical
(size, mtime) per relative path; keys compare case-insensitively.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from handoff.core.fingerprint import Fingerprint, FingerprintSet
from handoff.core.models import DeliverableFile
from tests.helpers.fs import FIXED_MTIME


def _file(relative_path: str, size: int = 10, mtime=FIXED_MTIME) -> DeliverableFile:
    return DeliverableFile(Path("/src") / relative_path, relative_path, size, mtime)


def test_identical_sets_match() -> None:
    left = FingerprintSet.from_files([_file("a.mp4"), _file("b.wav", 20)])
    right = FingerprintSet.from_files([_file("b.wav", 20), _file("a.mp4")])

    assert left.matches(right)
    assert left == right


def test_keys_compare_case_insensitively_and_ignore_separator_style() -> None:
    left = FingerprintSet.from_files([_file("Sub/A.MP4")])
    right = FingerprintSet.from_files([_file("sub\\a.mp4")])

    assert left == right
    assert "SUB/a.mp4" in left


def test_different_cardinality_never_matches() -> None:
    small = FingerprintSet.from_files([_file("a.mp4")])
    large = FingerprintSet.from_files([_file("a.mp4"), _file("b.mp4")])

    assert not small.matches(large)
    assert not large.matches(small)


def test_size_or_mtime_change_breaks_match() -> None:
    base = FingerprintSet.from_files([_file("a.mp4")])

    assert base != FingerprintSet.from_files([_file("a.mp4", size=11)])
    assert base != FingerprintSet.from_files([_file("a.mp4", mtime=FIXED_MTIME + timedelta(seconds=1))])


def test_renamed_file_breaks_match() -> None:
    assert FingerprintSet.from_files([_file("a.mp4")]) != FingerprintSet.from_files([_file("c.mp4")])


def test_empty_sets_are_equal_but_lookup_is_exact() -> None:
    empty = FingerprintSet()

    assert empty == FingerprintSet()
    assert len(empty) == 0
    assert FingerprintSet([("a.mp4", Fingerprint(1, FIXED_MTIME))])["A.mp4"] == Fingerprint(1, FIXED_MTIME)
