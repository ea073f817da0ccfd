"""
JSON sidecar parsing.

Two kinds of ``<media file>.json`` sidecars can accompany imported media.

Google Photos Takeout sidecars carry "title", "description", the
"photoTakenTime", "creationTime" and "modificationTime" stamps (each an
object whose "timestamp" is Unix seconds, always UTC) and the "geoData" /
"geoDataExif" positions.

Catalog sidecars written by a previous export use the record store's own
shape: "title", "notes", "created_time", "activity_time", "location",
"orientation" (or "attachment.orientation") and "tags".
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union

from takeout_importer.logging import logger
from takeout_importer.models import Location, Orientation, Tag, TagKind


SIDECAR_SUFFIX = '.json'

# "name.ext(1).json" is Google's sidecar for "name(1).ext"
_NUMBERED_SIDECAR = re.compile(r'^(?P<stem>.*)\.(?P<ext>[^./()]+)\((?P<num>\d+)\)$')
_NUMBERED_MEDIA = re.compile(r'^(?P<stem>.*)\((?P<num>\d+)\)\.(?P<ext>[^./()]+)$')


@dataclass(frozen=True)
class TakeoutMetadata:
    """What a Google Photos Takeout sidecar says about one media file.

    All times are UTC. ``location`` comes from "geoData" and
    ``exif_location`` from "geoDataExif"; either is None when Google wrote
    its all-zero placeholder.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    taken: Optional[datetime] = None
    uploaded: Optional[datetime] = None
    modified: Optional[datetime] = None
    location: Optional[Location] = None
    exif_location: Optional[Location] = None

    @property
    def best_location(self) -> Optional[Location]:
        return self.location or self.exif_location

    @property
    def first_time(self) -> Optional[datetime]:
        return self.taken or self.uploaded or self.modified


@dataclass
class ExportedMetadata:
    """Catalog metadata written alongside a previously exported file."""
    title: Optional[str] = None
    notes: Optional[str] = None
    created_time: Optional[datetime] = None
    activity_time: Optional[datetime] = None
    location: Optional[Location] = None
    orientation: Optional[Orientation] = None
    tags: List[Tag] = field(default_factory=list)


SidecarMetadata = Union[TakeoutMetadata, ExportedMetadata]


# --- Field Parsing -----------------------------------------------------------

def _parse_epoch(stamp: Any) -> Optional[datetime]:
    # {"timestamp": "<unix seconds>", "formatted": "..."}; only the number is trusted
    seconds = stamp.get('timestamp') if isinstance(stamp, dict) else None
    if not seconds:
        return None
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (ValueError, OSError, OverflowError):
        logger.debug(f"Ignoring Takeout timestamp {seconds!r}")
        return None


def _parse_geo(geo: Any) -> Optional[Location]:
    """Location of a "geoData" block; Google writes 0/0/0 when it has none."""
    if not isinstance(geo, dict):
        return None
    try:
        values = [float(geo.get(key, 0.0)) for key in ('latitude', 'longitude', 'altitude')]
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed geo data {geo!r}")
        return None
    if not any(values):
        return None
    return Location(*values)


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
        # naive times are taken as the importing machine's local time
        return parsed if parsed.tzinfo is not None else parsed.astimezone()
    except (ValueError, OverflowError, OSError):
        logger.debug(f"Ignoring malformed timestamp {value!r}")
        return None


def _parse_orientation(value: Any) -> Optional[Orientation]:
    if not value:
        return None
    try:
        return Orientation(value)
    except ValueError:
        logger.debug(f"Ignoring unknown orientation {value!r}")
        return None


def _parse_tags(items: Any) -> List[Tag]:
    tags: List[Tag] = []
    for item in items or []:
        name = item.get('name') if isinstance(item, dict) else None
        if not name:
            continue
        try:
            kind = TagKind(item.get('kind', TagKind.LABEL.value))
        except ValueError:
            kind = TagKind.LABEL
        tags.append(Tag(name, kind))
    return tags


# --- Sidecar Parsing ---------------------------------------------------------

def parse_takeout_metadata(data: Dict[str, Any]) -> TakeoutMetadata:
    return TakeoutMetadata(
        title=data.get('title') or None,
        description=data.get('description') or None,
        taken=_parse_epoch(data.get('photoTakenTime')),
        uploaded=_parse_epoch(data.get('creationTime')),
        modified=_parse_epoch(data.get('modificationTime')),
        location=_parse_geo(data.get('geoData')),
        exif_location=_parse_geo(data.get('geoDataExif')),
    )


def parse_exported_metadata(data: Dict[str, Any]) -> ExportedMetadata:
    location = None
    if isinstance(data.get('location'), dict):
        try:
            location = Location.from_dict(data['location'])
        except (KeyError, TypeError):
            logger.debug(f"Ignoring malformed location {data['location']!r}")

    attachment = data.get('attachment') or {}
    orientation = data.get('orientation') or attachment.get('orientation')

    return ExportedMetadata(
        title=data.get('title') or None,
        notes=data.get('notes') or None,
        created_time=_parse_iso(data.get('created_time')),
        activity_time=_parse_iso(data.get('activity_time')),
        location=location,
        orientation=_parse_orientation(orientation),
        tags=_parse_tags(data.get('tags')),
    )


def parse_sidecar(json_content: bytes, path: str = '') -> Optional[SidecarMetadata]:
    """Parse a JSON sidecar of either kind.

    Args:
        json_content: Raw JSON bytes
        path: Sidecar path (for logging)

    Returns:
        TakeoutMetadata, ExportedMetadata, or None if the file is not a
        sidecar we understand
    """
    try:
        data = json.loads(json_content.decode('utf-8'))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to parse JSON sidecar {path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.debug(f"Ignoring JSON file {path}: not an object")
        return None

    if 'photoTakenTime' in data or 'creationTime' in data:
        return parse_takeout_metadata(data)
    if 'activity_time' in data or 'attachment' in data:
        return parse_exported_metadata(data)

    logger.debug(f"Ignoring JSON file {path}: not a metadata sidecar")
    return None


# --- Sidecar Lookup ----------------------------------------------------------

def is_sidecar(path: str) -> bool:
    return path.lower().endswith(SIDECAR_SUFFIX)


def media_path_for_sidecar(sidecar_path: str) -> str:
    """Archive path of the media file a sidecar describes.

    Examples:
        >>> media_path_for_sidecar('Takeout/Photos/IMG_1.jpg.json')
        'Takeout/Photos/IMG_1.jpg'
        >>> media_path_for_sidecar('Takeout/Photos/IMG_1.jpg(1).json')
        'Takeout/Photos/IMG_1(1).jpg'
    """
    media_path = sidecar_path[:-len(SIDECAR_SUFFIX)]
    p = PurePosixPath(media_path)
    m = _NUMBERED_SIDECAR.match(p.name)
    if m:
        return str(p.with_name(f"{m.group('stem')}({m.group('num')}).{m.group('ext')}"))
    return media_path


def unnumbered_sibling(media_path: str) -> Optional[str]:
    """For "name(1).ext" return "name.ext"; None for other names.

    Examples:
        >>> unnumbered_sibling('Photos/MVIMG_1(1).jpg')
        'Photos/MVIMG_1.jpg'
        >>> unnumbered_sibling('Photos/MVIMG_1.jpg') is None
        True
    """
    p = PurePosixPath(media_path)
    m = _NUMBERED_MEDIA.match(p.name)
    if not m:
        return None
    return str(p.with_name(f"{m.group('stem')}.{m.group('ext')}"))
