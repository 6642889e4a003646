"""Content-state fingerprints for deliverable file sets.

A fingerprint is the ``(size_bytes, last_modified_utc)`` pair of a file. A
:class:`FingerprintSet` maps relative paths (case-insensitively) to their
fingerprints and is the only comparison used to decide whether a file set has
already been delivered.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime

from handoff.core.models import DeliverableFile, DeliveryFileSummary


@dataclass(frozen=True)
class Fingerprint:
    size_bytes: int
    last_modified_utc: datetime


def _normalize_key(relative_path: str) -> str:
    return relative_path.replace("\\", "/").strip("/").casefold()


class FingerprintSet(Mapping):
    """Immutable mapping of relative path to :class:`Fingerprint`.

    Two sets are equal iff they have the same cardinality and every key maps to
    an identical fingerprint. Keys compare case-insensitively; a later entry
    for the same key replaces an earlier one.
    """

    def __init__(self, entries: Iterable[tuple[str, Fingerprint]] = ()) -> None:
        data: dict[str, Fingerprint] = {}
        for relative_path, fingerprint in entries:
            data[_normalize_key(relative_path)] = fingerprint
        self._data = data

    @classmethod
    def from_files(cls, files: Iterable[DeliverableFile | DeliveryFileSummary]) -> "FingerprintSet":
        return cls(
            (item.relative_path, Fingerprint(item.size_bytes, item.last_modified_utc))
            for item in files
        )

    def __getitem__(self, key: str) -> Fingerprint:
        return self._data[_normalize_key(key)]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _normalize_key(key) in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FingerprintSet):
            return NotImplemented
        return self.matches(other)

    __hash__ = None

    def matches(self, other: "FingerprintSet") -> bool:
        if len(self._data) != len(other._data):
            return False
        for key, fingerprint in self._data.items():
            if other._data.get(key) != fingerprint:
                return False
        return True

    def __repr__(self) -> str:
        return f"FingerprintSet({len(self._data)} entries)"
