"""
Remote photo catalog loading and matching.

The remote catalog (e.g. Google Photos) is listed once per run into a
RemoteCatalogIndex. Imported files are then linked to a remote item by
file name; when several remote items share the name, the one whose
creation time is closest to the file's activity time wins.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from takeout_importer.errors import RemoteCatalogError
from takeout_importer.logging import logger
from takeout_importer.models import RemoteCatalogEntry
from takeout_importer.progress import Progress


@dataclass
class CatalogPage:
    items: List[Dict[str, Any]] = field(default_factory=list)
    next_page_token: Optional[str] = None


class RemoteCatalogClient(Protocol):
    def list_items(self, page_token: Optional[str] = None) -> CatalogPage:
        ...

    def search_items(self, collection_id: str, page_token: Optional[str] = None) -> CatalogPage:
        ...


# --- Index -------------------------------------------------------------------

class RemoteCatalogIndex:
    """Remote entries grouped by file name, in first-seen order."""

    def __init__(self) -> None:
        self._by_filename: 'OrderedDict[str, List[RemoteCatalogEntry]]' = OrderedDict()
        self._count = 0

    @classmethod
    def from_entries(cls, entries: Iterable[RemoteCatalogEntry]) -> 'RemoteCatalogIndex':
        index = cls()
        for entry in entries:
            index.add(entry)
        return index

    def add(self, entry: RemoteCatalogEntry) -> None:
        self._by_filename.setdefault(entry.filename, []).append(entry)
        self._count += 1

    def candidates(self, filename: str) -> List[RemoteCatalogEntry]:
        return list(self._by_filename.get(filename, []))

    def best_match(self, filename: str, timestamp: Optional[datetime] = None) -> Optional[RemoteCatalogEntry]:
        """Pick the remote entry for a file.

        Args:
            filename: File name to look up
            timestamp: Aware activity time of the local file

        Returns:
            The candidate closest in time (ties go to the first seen), the
            first candidate when there is no timestamp, or None
        """
        candidates = self._by_filename.get(filename)
        if not candidates:
            return None
        if timestamp is None:
            return candidates[0]

        best = candidates[0]
        best_distance = _distance_ms(best.creation_time, timestamp)
        for candidate in candidates[1:]:
            distance = _distance_ms(candidate.creation_time, timestamp)
            if distance < best_distance:
                best, best_distance = candidate, distance
        return best

    def ambiguous_filenames(self) -> List[str]:
        """File names shared by more than one remote entry."""
        return [name for name, entries in self._by_filename.items() if len(entries) > 1]

    def __len__(self) -> int:
        return self._count

    def __contains__(self, filename: object) -> bool:
        return filename in self._by_filename


def _distance_ms(a: datetime, b: datetime) -> int:
    delta = a - b
    return abs((delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000)


# --- Loading -----------------------------------------------------------------

def parse_catalog_item(item: Dict[str, Any]) -> RemoteCatalogEntry:
    """Parse one remote media item.

    Raises:
        RemoteCatalogError: If a required field is missing or malformed
    """
    try:
        media = item['mediaMetadata']
        raw_time = media['creationTime']
        creation_time = datetime.fromisoformat(raw_time.replace('Z', '+00:00'))
        width = int(media['width'])
        height = int(media['height'])
        return RemoteCatalogEntry(
            remote_id=item['id'],
            filename=item['filename'],
            creation_time=creation_time,
            width=width,
            height=height,
            description=item.get('description'),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise RemoteCatalogError(f"Invalid remote media item {item.get('id', '?')!r}: {e}") from e


def _pages(fetch, progress: Optional[Progress]) -> Iterator[Dict[str, Any]]:
    page_token: Optional[str] = None
    loaded = 0
    while True:
        if progress is not None:
            progress.set(0.0, [f"Loaded {loaded} media items"])
        page = fetch(page_token)
        for item in page.items:
            loaded += 1
            yield item
        page_token = page.next_page_token
        if not page_token:
            break
    if progress is not None:
        progress.set(0.0, [f"Loaded {loaded} media items"])


def load_remote_catalog(client: RemoteCatalogClient, progress: Optional[Progress] = None) -> RemoteCatalogIndex:
    """List every remote media item, following page tokens to the end."""
    index = RemoteCatalogIndex.from_entries(
        parse_catalog_item(item) for item in _pages(client.list_items, progress)
    )
    logger.info(f"Loaded {len(index)} remote media items ({len(index.ambiguous_filenames())} ambiguous names)")
    return index


def iter_collection_items(
    client: RemoteCatalogClient,
    collection_id: str,
    progress: Optional[Progress] = None,
) -> Iterator[RemoteCatalogEntry]:
    """Yield the media items of one remote collection (album)."""
    for item in _pages(lambda token: client.search_items(collection_id, token), progress):
        yield parse_catalog_item(item)
