"""
Streaming folder and archive scanning for Takeout Importer.

A Scanner pre-scans a folder once (total bytes plus a snapshot of file
paths). Each call to Scanner.iter() then starts one worker thread that
walks the snapshot, streams through every gzip-tar archive and hands the
entries to the consumer through a zero-capacity rendezvous channel: the
worker never runs more than one entry ahead of the consumer.
"""
from __future__ import annotations

import os
import tarfile
import threading
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Iterator, List, Optional, Set, Tuple

from takeout_importer.constants import MAX_ENTRY_BYTES, file_extension, is_archive
from takeout_importer.errors import ArchiveFormatError, DuplicateEntryError, ScanInterrupted
from takeout_importer.logging import logger
from takeout_importer.models import ArchiveEntry
from takeout_importer.progress import Progress
from takeout_importer.utils import human_size


# Decides per file name whether the entry's bytes must be loaded
NeedsContent = Callable[[str], bool]


# --- Rendezvous Channel ------------------------------------------------------

class ChannelClosed(Exception):
    """The other side of a RendezvousChannel has gone away."""


class RendezvousChannel:
    """Zero-capacity handoff between one producer and one consumer.

    send() returns only once the consumer has taken the item. close() wakes
    both sides; a send() that is pending or issued afterwards raises
    ChannelClosed, as does a recv() with nothing left to take.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: object = None
        self._full = False
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(self, item: object) -> None:
        with self._cond:
            while self._full and not self._closed:
                self._cond.wait()
            if self._closed:
                raise ChannelClosed()
            self._item = item
            self._full = True
            self._cond.notify_all()
            while self._full and not self._closed:
                self._cond.wait()
            if self._full:
                # closed before the consumer took it
                self._item = None
                self._full = False
                raise ChannelClosed()

    def recv(self) -> object:
        with self._cond:
            while not self._full and not self._closed:
                self._cond.wait()
            if not self._full:
                raise ChannelClosed()
            item = self._item
            self._item = None
            self._full = False
            self._cond.notify_all()
            return item

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


# Sent by the worker after the last entry
_DONE = object()


# --- Byte Counting -----------------------------------------------------------

class CountingReader:
    """File wrapper that counts the bytes read through it."""

    def __init__(self, raw: BinaryIO) -> None:
        self._raw = raw
        self.count = 0

    def read(self, size: int = -1) -> bytes:
        data = self._raw.read(size)
        self.count += len(data)
        return data

    def close(self) -> None:
        self._raw.close()


# --- Pre-scan ----------------------------------------------------------------

def initial_scan(
    root: Path,
    recursive: bool = False,
    progress: Optional[Progress] = None,
) -> Tuple[int, Tuple[str, ...]]:
    """Collect the total byte count and the file paths to scan.

    Sub-folders are only walked when recursive is set; otherwise they are
    skipped (and logged) so the set of discovered files stays the top-level
    files of root.

    Args:
        root: Folder to scan
        recursive: Descend into sub-folders
        progress: Optional progress sink

    Returns:
        Tuple of (total_bytes, sorted file paths)
    """
    total_bytes = 0
    file_names: List[str] = []
    pending = [root]

    while pending:
        folder = pending.pop()
        with os.scandir(folder) as it:
            children = sorted(it, key=lambda e: e.name)

        for entry in children:
            try:
                entry.path.encode('utf-8')
            except UnicodeEncodeError as e:
                raise ArchiveFormatError(f"Path {entry.path!r} contains non-UTF-8 bytes") from e

            if progress is not None:
                progress.set(0.0, [entry.path])

            if entry.is_dir():
                if recursive:
                    pending.append(Path(entry.path))
                else:
                    logger.debug(f"Not descending into folder {entry.path}")
            elif entry.is_file():
                total_bytes += entry.stat().st_size
                file_names.append(entry.path)

    file_names.sort()
    return total_bytes, tuple(file_names)


# --- Scanner -----------------------------------------------------------------

class Scanner:
    """Pre-scanned folder that can be iterated any number of times."""

    def __init__(
        self,
        root: Path,
        recursive: bool = False,
        progress: Optional[Progress] = None,
        max_entry_bytes: int = MAX_ENTRY_BYTES,
    ) -> None:
        self.root = Path(root)
        self.max_entry_bytes = max_entry_bytes
        self.total_bytes, self.file_names = initial_scan(self.root, recursive, progress)
        logger.info(
            f"Pre-scan of {self.root}: {len(self.file_names)} files, {human_size(self.total_bytes)}"
        )

    def iter(self, needs_content: NeedsContent) -> 'ScanIterator':
        """Start a new pass over every entry.

        Args:
            needs_content: Called with each entry's file name; entries for
                which it returns False are yielded with empty content

        Returns:
            A ScanIterator; close it (or use it as a context manager) when
            abandoning the pass early
        """
        return ScanIterator(self, needs_content)


class ScanIterator(Iterator[ArchiveEntry]):
    """Consumer end of one scan pass, owning the worker thread."""

    def __init__(self, scanner: Scanner, needs_content: NeedsContent) -> None:
        self._channel: Optional[RendezvousChannel] = RendezvousChannel()
        self._thread: Optional[threading.Thread] = threading.Thread(
            target=_scan_worker,
            args=(self._channel, scanner.root, scanner.total_bytes, scanner.file_names,
                  needs_content, scanner.max_entry_bytes),
            name='archive-scan',
            daemon=True,
        )
        self._thread.start()

    def __iter__(self) -> 'ScanIterator':
        return self

    def __next__(self) -> ArchiveEntry:
        if self._channel is None:
            raise StopIteration

        try:
            item = self._channel.recv()
        except ChannelClosed:
            self.close()
            raise ScanInterrupted('Scan worker ended without reporting completion')

        if item is _DONE:
            self.close()
            raise StopIteration
        if isinstance(item, BaseException):
            self.close()
            raise item
        return item  # type: ignore[return-value]

    @property
    def worker_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def close(self) -> None:
        """Close the channel and wait for the worker thread to exit."""
        if self._channel is not None:
            self._channel.close()
            self._channel = None
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> 'ScanIterator':
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        self.close()


# --- Worker ------------------------------------------------------------------

def _scan_worker(
    channel: RendezvousChannel,
    root: Path,
    total_bytes: int,
    file_names: Tuple[str, ...],
    needs_content: NeedsContent,
    max_entry_bytes: int,
) -> None:
    entries = _iter_entries(root, total_bytes, file_names, needs_content, max_entry_bytes)
    try:
        for entry in entries:
            channel.send(entry)
        channel.send(_DONE)
    except ChannelClosed:
        logger.debug("Scan abandoned by consumer")
    except Exception as e:
        logger.debug(f"Scan worker failed: {e}")
        try:
            channel.send(e)
        except ChannelClosed:
            pass
    finally:
        # releases any open archive before the thread can be joined
        entries.close()


def _iter_entries(
    root: Path,
    total_bytes: int,
    file_names: Tuple[str, ...],
    needs_content: NeedsContent,
    max_entry_bytes: int,
) -> Iterator[ArchiveEntry]:
    bytes_processed = 0
    seen: Set[str] = set()

    def progress_for(extra: int) -> Tuple[float, str]:
        done = bytes_processed + extra
        percent = (done / total_bytes * 100.0) if total_bytes else 0.0
        return percent, f"Processed {human_size(done)} of {human_size(total_bytes)}"

    def check_unique(archive_path: str) -> None:
        if archive_path in seen:
            raise DuplicateEntryError(f"Archive path {archive_path} appears more than once")
        seen.add(archive_path)

    for file_name in file_names:
        stat = os.stat(file_name)
        file_size = stat.st_size

        if is_archive(file_name):
            logger.info(f"Reading archive {file_name}")
            for archive_path, size, mtime, content, compressed_read in _iter_tar_members(
                file_name, needs_content, max_entry_bytes, check_unique
            ):
                base_name = PurePosixPath(archive_path).name
                percent, label = progress_for(compressed_read)
                yield ArchiveEntry(
                    display_path=f"{file_name} => {archive_path}",
                    archive_path=archive_path,
                    file_name=base_name,
                    extension=file_extension(base_name),
                    size=size,
                    content=content,
                    percent=percent,
                    progress_label=label,
                    mtime=mtime,
                )
        else:
            archive_path = Path(file_name).relative_to(root).as_posix()
            check_unique(archive_path)
            base_name = Path(file_name).name

            content = b''
            if needs_content(base_name):
                content = Path(file_name).read_bytes()

            percent, label = progress_for(file_size)
            yield ArchiveEntry(
                display_path=file_name,
                archive_path=archive_path,
                file_name=base_name,
                extension=file_extension(base_name),
                size=file_size,
                content=content,
                percent=percent,
                progress_label=label,
                mtime=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
            )

        bytes_processed += file_size


def _iter_tar_members(
    path: str,
    needs_content: NeedsContent,
    max_entry_bytes: int,
    check_unique: Callable[[str], None],
) -> Iterator[Tuple[str, int, Optional[datetime], bytes, int]]:
    """Stream the regular-file members of a gzip-tar archive in physical order.

    Yields:
        Tuples of (archive path, declared size, mtime, content, compressed
        bytes read)
    """
    with open(path, 'rb') as raw:
        counter = CountingReader(raw)
        try:
            with tarfile.open(fileobj=counter, mode='r|gz') as tf:  # type: ignore[call-overload]
                for member in tf:
                    if not member.isfile():
                        continue

                    archive_path = _member_path(member)
                    check_unique(archive_path)

                    if member.size > max_entry_bytes:
                        raise ArchiveFormatError(f"File {archive_path} is too large ({member.size} bytes)")

                    content = b''
                    if needs_content(PurePosixPath(archive_path).name):
                        f = tf.extractfile(member)
                        if f is None:
                            raise ArchiveFormatError(f"Cannot read {archive_path} from {path}")
                        content = f.read()

                    mtime = datetime.fromtimestamp(member.mtime, timezone.utc) if member.mtime else None
                    yield archive_path, member.size, mtime, content, counter.count
        except (tarfile.TarError, EOFError) as e:
            raise ArchiveFormatError(f"Corrupt archive {path}: {e}") from e
        except OSError as e:
            # gzip.BadGzipFile and truncated streams surface as OSError
            raise ArchiveFormatError(f"Corrupt archive {path}: {e}") from e


def _member_path(member: tarfile.TarInfo) -> str:
    name = member.name
    try:
        name.encode('utf-8')
    except UnicodeEncodeError as e:
        raise ArchiveFormatError('Contained file name contains non-UTF-8 byte sequences') from e
    if name.startswith('./'):
        name = name[2:]
    return name
