"""
Data models for Takeout Importer.

This module contains the dataclasses passed between the scanner, the
metadata extractors, the timezone resolver and the importer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Dict, List, Optional

from takeout_importer.errors import ConfigError


class Orientation(Enum):
    """How the stored pixels must be turned to display upright."""
    STRAIGHT = 'straight'
    ROTATED_LEFT = 'rotated-left'
    UPSIDE_DOWN = 'upside-down'
    ROTATED_RIGHT = 'rotated-right'

    @property
    def swaps_axes(self) -> bool:
        return self in (Orientation.ROTATED_LEFT, Orientation.ROTATED_RIGHT)


class TagKind(Enum):
    LABEL = 'label'
    LOCATION = 'location'
    TRASH = 'trash'


@dataclass(frozen=True)
class Tag:
    name: str
    kind: TagKind = TagKind.LABEL

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'kind': self.kind.value}


@dataclass(frozen=True)
class Location:
    """Geographic coordinates.

    Attributes:
        latitude: Decimal degrees (-90 to 90)
        longitude: Decimal degrees (-180 to 180)
        altitude: Meters above sea level (optional)
    """
    latitude: float
    longitude: float
    altitude: Optional[float] = None

    @classmethod
    def parse(cls, text: str) -> 'Location':
        """Parse ``"lat,lon"`` or ``"lat,lon,alt"``."""
        parts = [p.strip() for p in text.split(',')]
        if len(parts) not in (2, 3):
            raise ConfigError(f"Location {text!r} must be 'lat,lon' or 'lat,lon,alt'")
        try:
            values = [float(p) for p in parts]
        except ValueError as e:
            raise ConfigError(f"Location {text!r} is not numeric") from e
        if not -90.0 <= values[0] <= 90.0 or not -180.0 <= values[1] <= 180.0:
            raise ConfigError(f"Location {text!r} is out of range")
        return cls(*values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'altitude': self.altitude,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Location':
        return cls(
            latitude=data['latitude'],
            longitude=data['longitude'],
            altitude=data.get('altitude'),
        )


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def rotated(self, orientation: Optional[Orientation]) -> 'Dimensions':
        """Dimensions as displayed once the orientation is applied."""
        if orientation is not None and orientation.swaps_axes:
            return Dimensions(self.height, self.width)
        return self

    def fit_within(self, max_size: int) -> 'Dimensions':
        """Scale down (never up) so the longest side is at most max_size."""
        longest = max(self.width, self.height)
        if longest <= max_size or longest == 0:
            return self
        scale = max_size / longest
        return Dimensions(max(1, round(self.width * scale)), max(1, round(self.height * scale)))

    def to_dict(self) -> Dict[str, int]:
        return {'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class MakeModel:
    make: str
    model: str


@dataclass(frozen=True)
class CameraSettings:
    """Exposure settings, only recorded when all four tags are present."""
    exposure: str
    aperture: str
    focal_length: str
    iso: str


@dataclass(frozen=True)
class ArchiveEntry:
    """One file discovered during a scan.

    Attributes:
        display_path: Human readable "archive => member" path
        archive_path: Path relative to the archive (or scan root)
        file_name: Base name of the file
        extension: Lower-case extension without the dot
        size: Declared size in bytes
        content: File bytes, empty unless the caller asked for them
        percent: Cumulative progress across the whole scan
        progress_label: Human readable byte progress
        mtime: Modification time recorded for the file, when known
    """
    display_path: str
    archive_path: str
    file_name: str
    extension: str
    size: int
    content: bytes
    percent: float
    progress_label: str
    mtime: Optional[datetime] = None


@dataclass(frozen=True)
class ImportOptions:
    """Fallbacks and overrides applied while fusing metadata.

    Attributes:
        assumed_timezone: Zone for timestamps known to be local time
        forced_timezone: Zone every resolved timestamp is rewritten into
        assumed_notes: Notes used when no other source provides any
        assumed_location: Location used when no other source provides one
    """
    assumed_timezone: Optional[tzinfo] = None
    forced_timezone: Optional[tzinfo] = None
    assumed_notes: Optional[str] = None
    assumed_location: Optional[Location] = None

    @classmethod
    def from_strings(
        cls,
        assumed_timezone: Optional[str] = None,
        forced_timezone: Optional[str] = None,
        assumed_notes: Optional[str] = None,
        assumed_location: Optional[str] = None,
    ) -> 'ImportOptions':
        """Build options from command line text, raising ConfigError."""
        from takeout_importer.timezones import parse_timezone

        return cls(
            assumed_timezone=parse_timezone(assumed_timezone) if assumed_timezone else None,
            forced_timezone=parse_timezone(forced_timezone) if forced_timezone else None,
            assumed_notes=assumed_notes or None,
            assumed_location=Location.parse(assumed_location) if assumed_location else None,
        )


@dataclass(frozen=True)
class ExtractedMediaMetadata:
    """Embedded metadata of one image, produced once and never mutated."""
    orientation: Optional[Orientation] = None
    taken_local: Optional[datetime] = None
    digitized_local: Optional[datetime] = None
    gps_utc: Optional[datetime] = None
    activity_time: Optional[datetime] = None
    make_model: Optional[MakeModel] = None
    camera_settings: Optional[CameraSettings] = None
    location: Optional[Location] = None
    location_dop: Optional[float] = None


@dataclass(frozen=True)
class RemoteCatalogEntry:
    """A media item previously listed from the remote photo service."""
    remote_id: str
    filename: str
    creation_time: datetime
    width: int
    height: int
    description: Optional[str] = None


@dataclass
class AddRecord:
    """The normalized record handed to the storage collaborator.

    Attributes:
        filename: Attachment file name
        mime: MIME type after container analysis
        content: Attachment bytes
        file_created: Attachment creation time
        file_modified: Attachment modification time
        title: Object title
        notes: Free-text notes
        created_time: Object creation time when known
        activity_time: Best guess of when the media was captured
        location: Capture location
        orientation: Display orientation
        dimensions: Display dimensions (already rotated)
        duration_seconds: Video duration
        tags: Tags in insertion order, always ending with ``Unsorted``
        remote_id: Matched remote catalog id
    """
    filename: str
    mime: str
    content: bytes
    file_created: datetime
    file_modified: datetime
    title: Optional[str] = None
    notes: Optional[str] = None
    created_time: Optional[datetime] = None
    activity_time: Optional[datetime] = None
    location: Optional[Location] = None
    orientation: Optional[Orientation] = None
    dimensions: Optional[Dimensions] = None
    duration_seconds: Optional[int] = None
    tags: List[Tag] = field(default_factory=list)
    remote_id: Optional[str] = None

    @property
    def is_video(self) -> bool:
        return self.mime.startswith('video/')

    def add_tag(self, tag: Tag) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (bytes excluded)."""
        from takeout_importer.utils import calculate_hash

        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            'filename': self.filename,
            'mime': self.mime,
            'size': len(self.content),
            'hash': calculate_hash(self.content),
            'file_created': iso(self.file_created),
            'file_modified': iso(self.file_modified),
            'title': self.title,
            'notes': self.notes,
            'created_time': iso(self.created_time),
            'activity_time': iso(self.activity_time),
            'location': self.location.to_dict() if self.location else None,
            'orientation': self.orientation.value if self.orientation else None,
            'dimensions': self.dimensions.to_dict() if self.dimensions else None,
            'duration_seconds': self.duration_seconds,
            'tags': [t.to_dict() for t in self.tags],
            'remote_id': self.remote_id,
        }

