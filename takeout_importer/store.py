"""
Record storage for Takeout Importer.

The importer hands every normalized AddRecord to a RecordSink. The
JsonLinesStore sink appends one JSON object per record to a ``.jsonl``
file; attachment bytes are not written, only their size and hash.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, Protocol

from takeout_importer.logging import logger
from takeout_importer.models import AddRecord


class RecordSink(Protocol):
    def add(self, record: AddRecord) -> None:
        ...


class JsonLinesStore:
    """Append-only JSON Lines file of imported records.

    Args:
        path: Output ``.jsonl`` file; parent folders are created
        truncate: Start a new file instead of appending
    """

    def __init__(self, path: Path, truncate: bool = False) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.count = 0
        if truncate:
            self.path.write_text('', encoding='utf-8')

    def add(self, record: AddRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(line + '\n')
        self.count += 1
        logger.debug(f'Stored record for {record.filename} ({self.count} so far)')


def load_records(path: Path) -> Iterator[Dict[str, Any]]:
    """Read back the records of a JsonLinesStore file."""
    with open(path, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.error(f'Corrupt record at {path}:{line_no}: {e}')
                raise
