"""
Takeout Importer - Google Takeout media import package

Scans folders of Takeout archives, fuses embedded and sidecar metadata
into one timestamp, location and orientation per file, and emits
normalized catalog records with an auditable list of warnings.
"""
from __future__ import annotations

__version__ = "0.5.0"
__author__ = "Conrad"

# Re-export main components for convenient imports
from takeout_importer.models import (
    AddRecord,
    ArchiveEntry,
    Dimensions,
    ExtractedMediaMetadata,
    ImportOptions,
    Location,
    Orientation,
    RemoteCatalogEntry,
    Tag,
    TagKind,
)
from takeout_importer.errors import TakeoutImporterError
from takeout_importer.scanner import Scanner
from takeout_importer.exif import extract_image_metadata
from takeout_importer.container import ContainerSplit, SplitKind, detect_container_split
from takeout_importer.video import analyse_video, parse_probe_output
from takeout_importer.timezones import derive_timezone, parse_timezone, resolve_activity_time
from takeout_importer.catalog import RemoteCatalogIndex, load_remote_catalog
from takeout_importer.importer import FolderImport, ImportResult, MediaImporter
from takeout_importer.store import JsonLinesStore
from takeout_importer.warning import WarningKind, WarningLog, WarningRecord
from takeout_importer.utils import human_size

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Models
    "AddRecord",
    "ArchiveEntry",
    "Dimensions",
    "ExtractedMediaMetadata",
    "ImportOptions",
    "Location",
    "Orientation",
    "RemoteCatalogEntry",
    "Tag",
    "TagKind",
    "TakeoutImporterError",
    # Scanning
    "Scanner",
    # Extractors
    "extract_image_metadata",
    "ContainerSplit",
    "SplitKind",
    "detect_container_split",
    "analyse_video",
    "parse_probe_output",
    # Timezones
    "derive_timezone",
    "parse_timezone",
    "resolve_activity_time",
    # Remote catalog
    "RemoteCatalogIndex",
    "load_remote_catalog",
    # Import
    "FolderImport",
    "ImportResult",
    "MediaImporter",
    "JsonLinesStore",
    "WarningRecord",
    "WarningKind",
    "WarningLog",
    # Utils
    "human_size",
]
