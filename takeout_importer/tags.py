"""
Recently used tags.

A small bounded cache of the tags most recently applied, offered as
quick picks when tagging. The system tags are never cached.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Iterable, List

from takeout_importer.constants import TRASH_TAG, UNSORTED_TAG
from takeout_importer.models import Tag
from takeout_importer.utils import natural_key, normalize_name


RECENT_TAG_LIMIT = 10

_SYSTEM_NAMES = {normalize_name(UNSORTED_TAG), normalize_name(TRASH_TAG)}


class RecentTagCache:
    """Bounded, least-recently-used ordered map of tags."""

    def __init__(self, limit: int = RECENT_TAG_LIMIT) -> None:
        self.limit = limit
        self._tags: 'OrderedDict[str, Tag]' = OrderedDict()

    def use(self, tag: Tag) -> None:
        """Record that a tag was just applied, evicting the oldest if full."""
        key = normalize_name(tag.name)
        if key in _SYSTEM_NAMES:
            return
        self._tags[key] = tag
        self._tags.move_to_end(key)
        while len(self._tags) > self.limit:
            self._tags.popitem(last=False)

    def use_all(self, tags: Iterable[Tag]) -> None:
        for tag in tags:
            self.use(tag)

    def forget(self, name: str) -> None:
        """Drop a tag (e.g. after it was deleted or renamed)."""
        self._tags.pop(normalize_name(name), None)

    def recent(self) -> List[Tag]:
        """Cached tags in natural name order."""
        return sorted(self._tags.values(), key=lambda t: natural_key(t.name))

    def __len__(self) -> int:
        return len(self._tags)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._tags
