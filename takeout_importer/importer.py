"""
Import orchestration.

MediaImporter turns one media file plus whatever external metadata came
with it into a normalized AddRecord. The metadata sources are applied in a
fixed order, each stage free to override what the previous ones decided:

    1. filesystem times
    2. Takeout sidecar, then exported catalog sidecar
    3. embedded image metadata (EXIF, dimensions, Motion Photo video)
    4. embedded video metadata (ffprobe)
    5. display dimensions for the final orientation
    6. ImportOptions (forced timezone, assumed notes and location)
    7. reverse geocoded location tags
    8. the "Unsorted" tag
    9. remote catalog link

FolderImport drives a MediaImporter over a whole folder of archives.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from takeout_importer.catalog import RemoteCatalogIndex
from takeout_importer.constants import (
    TAKEOUT_IGNORED_PATHS,
    UNSORTED_TAG,
    VIDEO_MP4_MIME,
    guess_mime_type,
)
from takeout_importer.container import SplitKind, detect_container_split
from takeout_importer.errors import (
    ExifAnalysisError,
    ExifDecodeError,
    RemoteServiceError,
    UnsupportedMediaError,
    VideoAnalysisError,
)
from takeout_importer.exif import decode_dimensions, extract_image_metadata
from takeout_importer.google import ReverseGeocoder
from takeout_importer.logging import logger
from takeout_importer.models import AddRecord, ImportOptions, Tag, TagKind
from takeout_importer.progress import Progress
from takeout_importer.scanner import Scanner
from takeout_importer.sidecar import (
    ExportedMetadata,
    TakeoutMetadata,
    is_sidecar,
    media_path_for_sidecar,
    parse_sidecar,
    unnumbered_sibling,
)
from takeout_importer.store import RecordSink
from takeout_importer.tags import RecentTagCache
from takeout_importer.timezones import TimezoneLookup, apply_timezone_override, to_system_local
from takeout_importer.video import VideoAnalysis, analyse_video
from takeout_importer.warning import WarningKind, WarningLog, WarningRecord


@dataclass
class ImportResult:
    record: AddRecord
    warnings: List[WarningRecord] = field(default_factory=list)


class MediaImporter:
    """Builds AddRecords from media bytes and their metadata sources.

    Args:
        options: Fallbacks and overrides for the whole run
        timezone_lookup: Optional timezone collaborator
        geocoder: Optional reverse geocoding collaborator
        remote_index: Remote catalog to link records to; None skips linking
    """

    def __init__(
        self,
        options: Optional[ImportOptions] = None,
        timezone_lookup: Optional[TimezoneLookup] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        remote_index: Optional[RemoteCatalogIndex] = None,
    ) -> None:
        self.options = options or ImportOptions()
        self.timezone_lookup = timezone_lookup
        self.geocoder = geocoder
        self.remote_index = remote_index
        self._ambiguous_remote = set(remote_index.ambiguous_filenames()) if remote_index else set()

    def import_file(
        self,
        data: bytes,
        file_name: str,
        file_created: Optional[datetime] = None,
        file_modified: Optional[datetime] = None,
        takeout: Optional[TakeoutMetadata] = None,
        exported: Optional[ExportedMetadata] = None,
        display_name: Optional[str] = None,
    ) -> ImportResult:
        """Run every import stage for one file.

        Args:
            data: File bytes
            file_name: Base name of the file
            file_created: Filesystem creation time
            file_modified: Filesystem modification time
            takeout: Google Takeout sidecar metadata
            exported: Metadata exported alongside the file by a previous run
            display_name: Name used in warnings, defaults to file_name

        Returns:
            ImportResult with the record and this file's warnings

        Raises:
            UnsupportedMediaError: If the file name has no importable MIME type
        """
        mime = guess_mime_type(file_name)
        if mime is None:
            raise UnsupportedMediaError(f"Cannot guess MIME type for file {file_name}")

        result = ImportResult(self._seed(data, file_name, mime, file_created, file_modified))
        name = display_name or file_name

        def warn(kind: WarningKind, details: str) -> None:
            result.warnings.append(WarningRecord(kind, name, details))

        record = result.record
        if takeout is not None:
            self._apply_takeout(record, takeout, warn)
        if exported is not None:
            self._apply_exported(record, exported)
        if not record.is_video:
            self._apply_image(record, warn)
        if record.is_video:
            self._apply_video(record, warn)
        self._finish_dimensions(record, warn)
        self._apply_options(record)
        self._apply_geocode(record, warn)
        record.add_tag(Tag(UNSORTED_TAG, TagKind.LABEL))
        self._link_remote(record, warn)

        logger.debug(f"Imported {name}: {record.mime}, activity {record.activity_time}, {len(result.warnings)} warnings")
        return result

    # --- Stages --------------------------------------------------------------

    def _seed(
        self,
        data: bytes,
        file_name: str,
        mime: str,
        file_created: Optional[datetime],
        file_modified: Optional[datetime],
    ) -> AddRecord:
        now = datetime.now(timezone.utc).astimezone()
        created = file_created or now
        modified = file_modified or now
        # "created" is reset by copying, so the modified time is the better guess
        return AddRecord(
            filename=file_name,
            mime=mime,
            content=data,
            file_created=created,
            file_modified=modified,
            title=file_name,
            activity_time=modified,
        )

    def _apply_takeout(self, record: AddRecord, takeout: TakeoutMetadata, warn) -> None:
        if takeout.title:
            record.title = takeout.title
        if takeout.description:
            record.notes = takeout.description
        if takeout.best_location is not None:
            record.location = takeout.best_location

        # Takeout stamps are UTC only
        zone = None
        if record.location is not None and self.timezone_lookup is not None:
            when = takeout.first_time
            if when is not None:
                try:
                    zone = self.timezone_lookup.lookup(record.location, when).tzinfo
                except (RemoteServiceError, ValueError) as e:
                    warn(WarningKind.TIMEZONE_LOOKUP_FAILED, f"Takeout timestamps left in local time: {e}")

        def local(ts: datetime) -> datetime:
            return ts.astimezone(zone) if zone is not None else to_system_local(ts)

        if takeout.uploaded is not None:
            record.file_created = local(takeout.uploaded)
            record.created_time = record.file_created
        if takeout.modified is not None:
            record.file_modified = local(takeout.modified)
        if takeout.taken is not None:
            record.activity_time = local(takeout.taken)

    def _apply_exported(self, record: AddRecord, exported: ExportedMetadata) -> None:
        if exported.title:
            record.title = exported.title
        if exported.notes:
            record.notes = exported.notes
        if exported.created_time is not None:
            record.created_time = exported.created_time
        if exported.activity_time is not None:
            record.activity_time = exported.activity_time
        if exported.location is not None:
            record.location = exported.location
        if exported.orientation is not None:
            record.orientation = exported.orientation
        for tag in exported.tags:
            record.add_tag(tag)

    def _apply_image(self, record: AddRecord, warn) -> None:
        try:
            analysis = extract_image_metadata(record.content, record.filename, self.timezone_lookup)
        except ExifDecodeError as e:
            warn(WarningKind.EXIF_DECODE, str(e))
            analysis = None
        except ExifAnalysisError as e:
            warn(WarningKind.EXIF_ANALYZE, str(e))
            analysis = None

        if analysis is not None:
            for w in analysis.warnings:
                warn(WarningKind.EXIF_ANALYZE, w)
            metadata = analysis.metadata
            if metadata.activity_time is not None:
                record.activity_time = metadata.activity_time
            if metadata.location is not None:
                record.location = metadata.location
            if metadata.orientation is not None:
                record.orientation = metadata.orientation

        record.dimensions = decode_dimensions(record.content)

        split = detect_container_split(record.content, record.filename)
        if split.kind is SplitKind.BOTH:
            _, video = split.split(record.content)
            embedded = self._probe(video, warn)
            record.duration_seconds = embedded.duration_seconds
        elif split.kind is SplitKind.VIDEO_ONLY:
            logger.debug(f"{record.filename} is a video with an image extension")
            record.mime = VIDEO_MP4_MIME
            record.dimensions = None

    def _apply_video(self, record: AddRecord, warn) -> None:
        analysis = self._probe(record.content, warn)
        if analysis.activity_time is not None:
            record.activity_time = analysis.activity_time
        if record.location is None:
            record.location = analysis.location
        if record.orientation is None:
            record.orientation = analysis.orientation
        if record.dimensions is None:
            record.dimensions = analysis.dimensions
        if record.duration_seconds is None:
            record.duration_seconds = analysis.duration_seconds

    def _probe(self, data: bytes, warn) -> VideoAnalysis:
        try:
            analysis = analyse_video(data, self.options.assumed_timezone, self.timezone_lookup)
        except VideoAnalysisError as e:
            warn(WarningKind.VIDEO_ANALYSIS, str(e))
            return VideoAnalysis()
        for w in analysis.warnings:
            warn(WarningKind.VIDEO_ANALYSIS, w)
        return analysis

    def _finish_dimensions(self, record: AddRecord, warn) -> None:
        if record.dimensions is None:
            warn(WarningKind.MISSING_DIMENSIONS, f"No dimensions found for {record.mime} file")
        else:
            record.dimensions = record.dimensions.rotated(record.orientation)
        if record.is_video and record.duration_seconds is None:
            warn(WarningKind.MISSING_DURATION, 'No duration found for video file')

    def _apply_options(self, record: AddRecord) -> None:
        forced = self.options.forced_timezone
        if forced is not None:
            record.activity_time = apply_timezone_override(record.activity_time, forced)
            record.created_time = apply_timezone_override(record.created_time, forced)
        if record.notes is None and self.options.assumed_notes:
            record.notes = self.options.assumed_notes
        if record.location is None and self.options.assumed_location is not None:
            record.location = self.options.assumed_location

    def _apply_geocode(self, record: AddRecord, warn) -> None:
        if record.location is None or self.geocoder is None:
            return
        try:
            geocode = self.geocoder.reverse_geocode(record.location)
        except RemoteServiceError as e:
            warn(WarningKind.REVERSE_GEOCODE_FAILED, str(e))
            return
        for place in geocode.names:
            record.add_tag(Tag(place, TagKind.LOCATION))

    def _link_remote(self, record: AddRecord, warn) -> None:
        if self.remote_index is None:
            return
        if record.filename in self._ambiguous_remote:
            count = len(self.remote_index.candidates(record.filename))
            warn(WarningKind.DUPLICATE_REMOTE_FILENAME, f"{count} remote items share this file name")
        match = self.remote_index.best_match(record.filename, record.activity_time)
        if match is None:
            warn(WarningKind.MISSING_REMOTE_REFERENCE, 'No remote item with this file name')
            return
        record.remote_id = match.remote_id


# --- Bulk Import -------------------------------------------------------------

STAGE_SCAN = 'Scanning files'
STAGE_METADATA = 'Loading metadata'
STAGE_IMPORT = 'Importing media'


class FolderImport:
    """Import every media file in a folder of Takeout archives.

    The folder is read three times: once to index the media files, once to
    load the JSON sidecars that belong to them and once to import the media.

    Args:
        root: Folder holding archives and loose files
        sink: Receives one AddRecord per imported file
        importer: Configured MediaImporter
        recursive: Also scan sub-folders
        progress: Optional progress sink
    """

    def __init__(
        self,
        root: Path,
        sink: RecordSink,
        importer: MediaImporter,
        recursive: bool = False,
        progress: Optional[Progress] = None,
    ) -> None:
        self.root = Path(root)
        self.sink = sink
        self.importer = importer
        self.recursive = recursive
        self.progress = progress or Progress()
        self.recent_tags = RecentTagCache()
        self.imported = 0
        self.skipped = 0

    def run(self) -> WarningLog:
        """Run the import.

        Returns:
            Every warning raised during the run

        Raises:
            ArchiveFormatError: On corrupt archives or oversized members
            DuplicateEntryError: If an archive path repeats
        """
        log = WarningLog()

        self.progress.start_stage(STAGE_SCAN, [STAGE_METADATA, STAGE_IMPORT])
        scanner = Scanner(self.root, self.recursive, self.progress)
        media = self._index_media(scanner)

        self.progress.start_stage(STAGE_METADATA, [STAGE_IMPORT])
        takeout, exported = self._load_sidecars(scanner, media)

        self.progress.start_stage(STAGE_IMPORT, [])
        self._import_media(scanner, media, takeout, exported, log)

        logger.info(
            f"Import of {self.root} finished: {self.imported} imported, "
            f"{self.skipped} skipped, {len(log)} warnings"
        )
        return log

    def _index_media(self, scanner: Scanner) -> Dict[str, int]:
        media: Dict[str, int] = {}
        with scanner.iter(lambda name: False) as entries:
            for entry in entries:
                self.progress.set(entry.percent, [entry.display_path, entry.progress_label])
                if entry.archive_path in TAKEOUT_IGNORED_PATHS or is_sidecar(entry.file_name):
                    continue
                if guess_mime_type(entry.file_name) is None:
                    logger.debug(f"Skipping non-media file {entry.display_path}")
                    continue
                media[entry.archive_path] = entry.size
        logger.info(f"Found {len(media)} media files")
        return media

    def _load_sidecars(self, scanner: Scanner, media: Dict[str, int]):
        takeout: Dict[str, TakeoutMetadata] = {}
        exported: Dict[str, ExportedMetadata] = {}

        with scanner.iter(is_sidecar) as entries:
            for entry in entries:
                self.progress.set(entry.percent, [
                    entry.display_path,
                    entry.progress_label,
                    f"Found metadata for {len(takeout) + len(exported)} out of {len(media)} media files",
                ])
                if not is_sidecar(entry.file_name):
                    continue
                media_path = media_path_for_sidecar(entry.archive_path)
                if media_path not in media:
                    continue
                metadata = parse_sidecar(entry.content, entry.display_path)
                if isinstance(metadata, TakeoutMetadata):
                    takeout[media_path] = metadata
                elif isinstance(metadata, ExportedMetadata):
                    exported[media_path] = metadata

        logger.info(f"Loaded {len(takeout)} Takeout and {len(exported)} exported sidecars")
        return takeout, exported

    def _import_media(
        self,
        scanner: Scanner,
        media: Dict[str, int],
        takeout: Dict[str, TakeoutMetadata],
        exported: Dict[str, ExportedMetadata],
        log: WarningLog,
    ) -> None:
        expect_takeout = bool(takeout)

        with scanner.iter(lambda name: guess_mime_type(name) is not None) as entries:
            for entry in entries:
                self.progress.set(entry.percent, [entry.display_path, entry.progress_label])
                path = entry.archive_path
                if path not in media:
                    continue

                if expect_takeout and path not in takeout:
                    if self._is_split_duplicate(path, entry.content, entry.file_name, media, takeout):
                        log.add(
                            WarningKind.CONTAINER_SPLIT_DUPLICATE, path,
                            f"Skipped: video already contained in {unnumbered_sibling(path)}",
                        )
                        self.skipped += 1
                        continue
                    log.add(WarningKind.NO_EXTERNAL_METADATA, path, 'No Takeout metadata found')

                modified = entry.mtime.astimezone() if entry.mtime else None
                result = self.importer.import_file(
                    entry.content,
                    entry.file_name,
                    file_created=modified,
                    file_modified=modified,
                    takeout=takeout.get(path),
                    exported=exported.get(path),
                    display_name=path,
                )
                log.extend(result.warnings)
                self.sink.add(result.record)
                self.recent_tags.use_all(result.record.tags)
                self.imported += 1

    @staticmethod
    def _is_split_duplicate(
        path: str,
        content: bytes,
        file_name: str,
        media: Dict[str, int],
        takeout: Dict[str, TakeoutMetadata],
    ) -> bool:
        """Whether path is the "name(1).ext" video Takeout split off a Motion Photo."""
        sibling = unnumbered_sibling(path)
        if sibling is None or sibling not in media or sibling not in takeout:
            return False
        if media[sibling] <= media[path]:
            return False
        return detect_container_split(content, file_name).kind is SplitKind.VIDEO_ONLY
