"""
Exception hierarchy for Takeout Importer.

Fatal conditions (corrupt archives, duplicate entries) abort a run; the
extraction errors are caught by the importer and downgraded to warnings.
"""
from __future__ import annotations


class TakeoutImporterError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(TakeoutImporterError, ValueError):
    """Invalid option text (timezone, location, paths)."""


class ArchiveFormatError(TakeoutImporterError):
    """Corrupt archive, non-UTF-8 member name or oversized member."""


class DuplicateEntryError(TakeoutImporterError):
    """The same archive path was seen twice within one scan."""


class ScanInterrupted(TakeoutImporterError):
    """The scan worker went away without reporting completion."""


class UnsupportedMediaError(TakeoutImporterError):
    """A file with no importable MIME type reached the importer."""


class ExifDecodeError(TakeoutImporterError):
    """EXIF data is present but could not be decoded."""


class ExifAnalysisError(TakeoutImporterError):
    """EXIF data decoded but holds values we refuse to interpret."""


class VideoAnalysisError(TakeoutImporterError):
    """The media prober produced output we cannot read."""


class AmbiguousTimeError(TakeoutImporterError):
    """A wall-clock time is repeated or skipped in the target timezone."""


class RemoteServiceError(TakeoutImporterError):
    """A remote lookup (timezone, geocode, catalog page) failed."""


class RemoteCatalogError(TakeoutImporterError):
    """A remote catalog item could not be parsed."""
