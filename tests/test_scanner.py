"""
Tests for takeout_importer.scanner module.
"""
import io
import tarfile
import threading

import pytest

from takeout_importer.errors import ArchiveFormatError, DuplicateEntryError
from takeout_importer.progress import Progress
from takeout_importer.scanner import ChannelClosed, RendezvousChannel, Scanner, initial_scan


def make_tar(path, members, mtime=1_600_000_000):
    """Write a gzip-tar archive holding (name, bytes) members in order."""
    with tarfile.open(path, 'w:gz') as tf:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = mtime
            tf.addfile(info, io.BytesIO(data))
    return path


def everything(name):
    return True


class TestRendezvousChannel:
    """Tests for RendezvousChannel."""

    def test_send_waits_for_receiver(self):
        """send() returns only after recv() took the item."""
        channel = RendezvousChannel()
        done = threading.Event()

        def producer():
            channel.send('item')
            done.set()

        t = threading.Thread(target=producer)
        t.start()
        assert not done.wait(0.1)
        assert channel.recv() == 'item'
        t.join(5)
        assert done.is_set()

    def test_close_releases_sender(self):
        """A pending send() raises ChannelClosed once closed."""
        channel = RendezvousChannel()
        errors = []

        def producer():
            try:
                channel.send('item')
            except ChannelClosed:
                errors.append('closed')

        t = threading.Thread(target=producer)
        t.start()
        channel.close()
        t.join(5)
        assert errors == ['closed']

    def test_recv_after_close(self):
        """recv() on an empty closed channel raises ChannelClosed."""
        channel = RendezvousChannel()
        channel.close()
        assert channel.closed
        with pytest.raises(ChannelClosed):
            channel.recv()


class TestInitialScan:
    """Tests for initial_scan function."""

    def test_top_level_only_by_default(self, tmp_path):
        """Sub-folders are skipped unless recursive is set."""
        (tmp_path / 'a.jpg').write_bytes(b'12345')
        sub = tmp_path / 'sub'
        sub.mkdir()
        (sub / 'b.jpg').write_bytes(b'123')

        total, names = initial_scan(tmp_path)
        assert total == 5
        assert names == (str(tmp_path / 'a.jpg'),)

    def test_recursive(self, tmp_path):
        """Recursive scans include nested files."""
        (tmp_path / 'a.jpg').write_bytes(b'12345')
        sub = tmp_path / 'sub'
        sub.mkdir()
        (sub / 'b.jpg').write_bytes(b'123')

        total, names = initial_scan(tmp_path, recursive=True)
        assert total == 8
        assert names == tuple(sorted([str(tmp_path / 'a.jpg'), str(sub / 'b.jpg')]))

    def test_reports_progress(self, tmp_path):
        """Each visited path is reported."""
        (tmp_path / 'a.jpg').write_bytes(b'1')
        progress = Progress()
        progress.start_stage('Scanning', [])
        initial_scan(tmp_path, progress=progress)
        assert progress.snapshot().lines == [str(tmp_path / 'a.jpg')]


class TestScanner:
    """Tests for Scanner iteration."""

    def test_archive_entries_in_physical_order(self, tmp_path):
        """Archive members come out in the order they are stored."""
        make_tar(tmp_path / 'takeout-001.tgz', [
            ('Takeout/Google Photos/z.jpg', b'zzz'),
            ('Takeout/Google Photos/a.jpg', b'a'),
        ])
        scanner = Scanner(tmp_path)
        with scanner.iter(everything) as it:
            entries = list(it)

        assert [e.archive_path for e in entries] == [
            'Takeout/Google Photos/z.jpg',
            'Takeout/Google Photos/a.jpg',
        ]
        assert entries[0].file_name == 'z.jpg'
        assert entries[0].extension == 'jpg'
        assert entries[0].size == 3
        assert entries[0].content == b'zzz'
        assert entries[0].display_path.endswith('=> Takeout/Google Photos/z.jpg')
        assert entries[0].mtime.timestamp() == 1_600_000_000

    def test_needs_content_filters_loading(self, tmp_path):
        """Entries not needing content are yielded empty, with their size."""
        make_tar(tmp_path / 'takeout.tar.gz', [
            ('photo.jpg', b'image'),
            ('photo.jpg.json', b'{}'),
        ])
        scanner = Scanner(tmp_path)
        with scanner.iter(lambda name: name.endswith('.json')) as it:
            entries = {e.archive_path: e for e in it}

        assert entries['photo.jpg'].content == b''
        assert entries['photo.jpg'].size == 5
        assert entries['photo.jpg.json'].content == b'{}'

    def test_loose_files(self, tmp_path):
        """Plain files are yielded relative to the root."""
        (tmp_path / 'IMG_1.jpg').write_bytes(b'jpeg')
        scanner = Scanner(tmp_path)
        with scanner.iter(everything) as it:
            entries = list(it)

        assert len(entries) == 1
        assert entries[0].archive_path == 'IMG_1.jpg'
        assert entries[0].content == b'jpeg'
        assert entries[0].percent == 100.0
        assert entries[0].mtime is not None

    def test_can_iterate_twice(self, tmp_path):
        """Each iter() starts a fresh pass over the same snapshot."""
        (tmp_path / 'IMG_1.jpg').write_bytes(b'jpeg')
        scanner = Scanner(tmp_path)
        first = [e.archive_path for e in scanner.iter(everything)]
        second = [e.archive_path for e in scanner.iter(everything)]
        assert first == second == ['IMG_1.jpg']

    def test_duplicate_path(self, tmp_path):
        """The same archive path in two sources is an error."""
        (tmp_path / 'a.jpg').write_bytes(b'loose')
        make_tar(tmp_path / 'b.tar.gz', [('a.jpg', b'packed')])
        scanner = Scanner(tmp_path)
        with pytest.raises(DuplicateEntryError):
            with scanner.iter(everything) as it:
                list(it)

    def test_corrupt_archive(self, tmp_path):
        """Garbage with an archive suffix raises ArchiveFormatError."""
        (tmp_path / 'broken.tar.gz').write_bytes(b'this is not gzip data at all')
        scanner = Scanner(tmp_path)
        with pytest.raises(ArchiveFormatError):
            with scanner.iter(everything) as it:
                list(it)

    def test_oversized_entry(self, tmp_path):
        """Entries above the size limit are rejected."""
        make_tar(tmp_path / 'big.tgz', [('big.jpg', b'0123456789')])
        scanner = Scanner(tmp_path, max_entry_bytes=4)
        with pytest.raises(ArchiveFormatError, match='too large'):
            with scanner.iter(everything) as it:
                list(it)

    def test_abandoned_scan_stops_worker(self, tmp_path):
        """Closing after one entry shuts down the worker thread."""
        make_tar(tmp_path / 'takeout.tgz', [
            ('a.jpg', b'a'),
            ('b.jpg', b'b'),
            ('c.jpg', b'c'),
        ])
        scanner = Scanner(tmp_path)
        it = scanner.iter(everything)
        assert next(it).archive_path == 'a.jpg'
        it.close()
        assert not it.worker_alive
        with pytest.raises(StopIteration):
            next(it)
