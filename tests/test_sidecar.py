"""
Tests for takeout_importer.sidecar module.
"""
import json
from datetime import datetime, timezone

from takeout_importer.models import Location, Orientation, Tag, TagKind
from takeout_importer.sidecar import (
    ExportedMetadata,
    TakeoutMetadata,
    is_sidecar,
    media_path_for_sidecar,
    parse_sidecar,
    unnumbered_sibling,
)


def takeout_json(**overrides):
    data = {
        'title': 'IMG_1234.jpg',
        'description': 'Beach day',
        'creationTime': {'timestamp': '1563199445', 'formatted': 'Jul 15, 2019, 2:04:05 PM UTC'},
        'photoTakenTime': {'timestamp': '1563199205', 'formatted': 'Jul 15, 2019, 2:00:05 PM UTC'},
        'geoData': {'latitude': 40.7128, 'longitude': -74.006, 'altitude': 10.0,
                    'latitudeSpan': 0.0, 'longitudeSpan': 0.0},
    }
    data.update(overrides)
    return json.dumps(data).encode('utf-8')


class TestParseTakeoutSidecar:
    """Tests for Google Takeout sidecars."""

    def test_full_sidecar(self):
        """All fields are parsed, timestamps in UTC."""
        meta = parse_sidecar(takeout_json())
        assert isinstance(meta, TakeoutMetadata)
        assert meta.title == 'IMG_1234.jpg'
        assert meta.description == 'Beach day'
        assert meta.taken == datetime(2019, 7, 15, 14, 0, 5, tzinfo=timezone.utc)
        assert meta.uploaded == datetime(2019, 7, 15, 14, 4, 5, tzinfo=timezone.utc)
        assert meta.location == Location(40.7128, -74.006, 10.0)
        assert meta.exif_location is None
        assert meta.modified is None

    def test_zero_location_is_none(self):
        """The all-zero geoData sentinel means no location."""
        meta = parse_sidecar(takeout_json(geoData={'latitude': 0.0, 'longitude': 0.0, 'altitude': 0.0}))
        assert meta.location is None

    def test_empty_description_is_none(self):
        """Empty strings are treated as missing."""
        meta = parse_sidecar(takeout_json(description=''))
        assert meta.description is None

    def test_bad_timestamp_ignored(self):
        """Unparseable timestamps become None."""
        meta = parse_sidecar(takeout_json(photoTakenTime={'timestamp': 'soon'}))
        assert meta.taken is None
        assert meta.uploaded is not None

    def test_exif_location_fallback(self):
        """geoDataExif is used when geoData is the zero placeholder."""
        meta = parse_sidecar(takeout_json(
            geoData={'latitude': 0.0, 'longitude': 0.0, 'altitude': 0.0},
            geoDataExif={'latitude': -27.47, 'longitude': 153.02, 'altitude': 0.0},
        ))
        assert meta.location is None
        assert meta.best_location == Location(-27.47, 153.02, 0.0)

    def test_first_time(self):
        """The taken time wins, then upload, then modification."""
        modified = {'timestamp': '1600000000'}
        meta = parse_sidecar(takeout_json(photoTakenTime={}, creationTime={}, modificationTime=modified))
        assert meta.first_time == datetime(2020, 9, 13, 12, 26, 40, tzinfo=timezone.utc)
        assert parse_sidecar(takeout_json()).first_time == datetime(2019, 7, 15, 14, 0, 5, tzinfo=timezone.utc)


class TestParseExportedSidecar:
    """Tests for catalog export sidecars."""

    def test_exported_fields(self):
        """Exported metadata carries times, orientation and tags."""
        content = json.dumps({
            'title': 'Sunset',
            'notes': 'From the pier',
            'created_time': '2019-07-15T14:00:05+10:00',
            'activity_time': '2019-07-15T18:30:00+10:00',
            'location': {'latitude': -27.47, 'longitude': 153.02, 'altitude': None},
            'attachment': {'orientation': 'rotated-left'},
            'tags': [{'name': 'Brisbane', 'kind': 'location'}, {'name': 'Holiday'}, {'kind': 'label'}],
        }).encode('utf-8')
        meta = parse_sidecar(content)
        assert isinstance(meta, ExportedMetadata)
        assert meta.title == 'Sunset'
        assert meta.notes == 'From the pier'
        assert meta.activity_time.isoformat() == '2019-07-15T18:30:00+10:00'
        assert meta.location == Location(-27.47, 153.02)
        assert meta.orientation is Orientation.ROTATED_LEFT
        assert meta.tags == [Tag('Brisbane', TagKind.LOCATION), Tag('Holiday', TagKind.LABEL)]

    def test_naive_times_are_local(self):
        """Times without an offset are read as system local time."""
        meta = parse_sidecar(json.dumps({'activity_time': '2019-07-15T18:00:00'}).encode())
        assert meta.activity_time.tzinfo is not None
        assert meta.activity_time == datetime(2019, 7, 15, 18, 0).astimezone()

    def test_unknown_orientation_ignored(self):
        """Unknown orientation values are dropped."""
        meta = parse_sidecar(json.dumps({'activity_time': None, 'orientation': 'sideways'}).encode())
        assert meta.orientation is None


class TestParseSidecarRejects:
    """Tests for content that is not a sidecar."""

    def test_invalid_json(self):
        """Broken JSON gives None."""
        assert parse_sidecar(b'{not json', 'x.json') is None

    def test_not_an_object(self):
        """Top-level arrays are ignored."""
        assert parse_sidecar(b'[1, 2]') is None

    def test_unrelated_json(self):
        """Objects without known keys are ignored."""
        assert parse_sidecar(b'{"albumName": "Trip"}') is None


class TestSidecarPaths:
    """Tests for sidecar path helpers."""

    def test_is_sidecar(self):
        """Only .json files are sidecars."""
        assert is_sidecar('a/IMG_1.jpg.json')
        assert is_sidecar('a/IMG_1.JPG.JSON')
        assert not is_sidecar('a/IMG_1.jpg')

    def test_media_path(self):
        """Strip the .json suffix."""
        assert media_path_for_sidecar('Takeout/Photos/IMG_1.jpg.json') == 'Takeout/Photos/IMG_1.jpg'

    def test_numbered_media_path(self):
        """Google numbers the sidecar after the extension."""
        assert media_path_for_sidecar('Takeout/Photos/IMG_1.jpg(1).json') == 'Takeout/Photos/IMG_1(1).jpg'

    def test_unnumbered_sibling(self):
        """Numbered names map back to the plain name."""
        assert unnumbered_sibling('Photos/MVIMG_1(1).jpg') == 'Photos/MVIMG_1.jpg'
        assert unnumbered_sibling('Photos/MVIMG_1.jpg') is None
