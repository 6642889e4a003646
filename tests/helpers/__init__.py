"""Test helper utilities."""

from .fs import FIXED_MTIME, write_deliverable, write_source_tree
from .fakes import FakeFilesClient, FakeShareClient, FakeTokenProvider, RecordingSender

__all__ = [
    "FIXED_MTIME",
    "write_deliverable",
    "write_source_tree",
    "FakeFilesClient",
    "FakeShareClient",
    "FakeTokenProvider",
    "RecordingSender",
]
