"""
Import warnings.

Every ambiguous or degraded resolution during an import is recorded as a
WarningRecord. Records are accumulated for the whole run and always handed
back to the caller alongside the otherwise successful result.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List

from takeout_importer.logging import logger
from takeout_importer.utils import natural_key


class WarningKind(Enum):
    EXIF_DECODE = 1
    EXIF_ANALYZE = 2
    CONTAINER_SPLIT_DUPLICATE = 3
    VIDEO_ANALYSIS = 4
    MISSING_DIMENSIONS = 5
    MISSING_DURATION = 6
    REVERSE_GEOCODE_FAILED = 7
    DUPLICATE_REMOTE_FILENAME = 8
    MISSING_REMOTE_REFERENCE = 9
    NO_EXTERNAL_METADATA = 10
    TIMEZONE_LOOKUP_FAILED = 11

    @property
    def label(self) -> str:
        return self.name.replace('_', ' ').title()


@dataclass(frozen=True)
class WarningRecord:
    kind: WarningKind
    filename: str
    details: str

    def sort_key(self):
        return (self.kind.value, natural_key(self.filename), self.details)

    def __str__(self) -> str:
        return f"{self.filename}: {self.kind.label}: {self.details}"


def sorted_for_display(warnings: Iterable[WarningRecord]) -> List[WarningRecord]:
    """Order warnings by kind, then naturally by file name."""
    return sorted(warnings, key=WarningRecord.sort_key)


class WarningLog:
    """Accumulates warnings for one import run."""

    def __init__(self) -> None:
        self._warnings: List[WarningRecord] = []

    def add(self, kind: WarningKind, filename: str, details: str) -> Warning:
        warning = WarningRecord(kind, filename, details)
        self._warnings.append(warning)
        logger.warning(str(warning))
        return warning

    def extend(self, warnings: Iterable[WarningRecord]) -> None:
        for w in warnings:
            self._warnings.append(w)
            logger.warning(str(w))

    def for_file(self, filename: str) -> List[WarningRecord]:
        return [w for w in self._warnings if w.filename == filename]

    def sorted(self) -> List[WarningRecord]:
        return sorted_for_display(self._warnings)

    def counts(self) -> Dict[WarningKind, int]:
        return dict(Counter(w.kind for w in self._warnings))

    def __len__(self) -> int:
        return len(self._warnings)

    def __iter__(self) -> Iterator[WarningRecord]:
        return iter(list(self._warnings))
