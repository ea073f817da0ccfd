"""
Tests for takeout_importer.exif module.
"""
import io
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from takeout_importer.errors import ExifAnalysisError, ExifDecodeError
from takeout_importer.exif import (
    _parse_location,
    compact_aperture,
    compact_iso,
    decode_dimensions,
    extract_image_metadata,
)
from takeout_importer.models import Dimensions, Location, MakeModel, Orientation


def make_jpeg(exif=None, size=(8, 6)):
    """Encode a small JPEG, optionally with EXIF."""
    buf = io.BytesIO()
    img = Image.new('RGB', size, color=(200, 100, 50))
    if exif is None:
        img.save(buf, format='JPEG')
    else:
        img.save(buf, format='JPEG', exif=exif)
    return buf.getvalue()


def camera_exif(with_gps=True):
    exif = Image.Exif()
    exif[0x0112] = 6                      # Orientation
    exif[0x010F] = 'Google'               # Make
    exif[0x0110] = 'Pixel 3'              # Model
    exif[0x8769] = {
        0x9003: '2018:03:02 19:20:09',    # DateTimeOriginal
        0x9004: '2018:03:02 19:20:09',    # DateTimeDigitized
        0x829A: 0.008,                    # ExposureTime
        0x829D: 1.8,                      # FNumber
        0x920A: 4.25,                     # FocalLength
        0x8827: 100,                      # ISOSpeedRatings
    }
    if with_gps:
        exif[0x8825] = {
            1: 'S',
            2: (27.0, 28.0, 12.0),
            3: 'E',
            4: (153.0, 1.0, 12.0),
            7: (9.0, 20.0, 0.0),
            29: '2018:03:02',
        }
    return exif


class TestExtractImageMetadata:
    """Tests for extract_image_metadata function."""

    def test_full_exif(self):
        """Camera, GPS and settings are decoded."""
        analysis = extract_image_metadata(make_jpeg(camera_exif()), 'IMG_1.jpg')
        meta = analysis.metadata

        assert meta.orientation is Orientation.ROTATED_LEFT
        assert meta.make_model == MakeModel('Google', 'Pixel 3')
        assert meta.taken_local == datetime(2018, 3, 2, 19, 20, 9)
        assert meta.digitized_local == datetime(2018, 3, 2, 19, 20, 9)
        assert meta.gps_utc == datetime(2018, 3, 2, 9, 20, tzinfo=timezone.utc)
        assert meta.location.latitude == pytest.approx(-27.47)
        assert meta.location.longitude == pytest.approx(153.02)
        assert meta.location.altitude is None

    def test_camera_settings(self):
        """Exposure settings use the compact forms."""
        meta = extract_image_metadata(make_jpeg(camera_exif()), 'IMG_1.jpg').metadata
        assert meta.camera_settings.exposure == '1/125 s'
        assert meta.camera_settings.aperture == 'ƒ/1.8'
        assert meta.camera_settings.focal_length == '4.25 mm'
        assert meta.camera_settings.iso == 'ISO100'

    def test_activity_time_derived_from_gps(self):
        """Local and GPS times give a +10:00 activity time."""
        meta = extract_image_metadata(make_jpeg(camera_exif()), 'IMG_1.jpg').metadata
        assert meta.activity_time.utcoffset() == timedelta(hours=10)
        assert meta.activity_time.replace(tzinfo=None) == datetime(2018, 3, 2, 19, 20, 9)

    def test_no_gps(self):
        """Without GPS the activity time stays unresolved."""
        analysis = extract_image_metadata(make_jpeg(camera_exif(with_gps=False)), 'IMG_1.jpg')
        assert analysis.metadata.location is None
        assert analysis.metadata.gps_utc is None
        assert analysis.metadata.activity_time is None

    def test_no_exif(self):
        """An image without EXIF gives None."""
        assert extract_image_metadata(make_jpeg(), 'plain.jpg') is None

    def test_oversized_image(self, monkeypatch):
        """Images over Pillow's pixel limit raise a decode error."""
        data = make_jpeg(camera_exif())
        monkeypatch.setattr(Image, 'MAX_IMAGE_PIXELS', 4)
        with pytest.raises(ExifDecodeError):
            extract_image_metadata(data, 'pano.jpg')

    def test_not_an_image(self):
        """Unrecognized bytes give None."""
        assert extract_image_metadata(b'not an image', 'bogus.jpg') is None

    def test_bad_local_time_warns(self):
        """Undecodable taken times become warnings."""
        exif = camera_exif(with_gps=False)
        exif[0x8769] = {0x9003: 'sometime'}
        analysis = extract_image_metadata(make_jpeg(exif), 'IMG_1.jpg')
        assert analysis.metadata.taken_local is None
        assert any('original local date/time' in w for w in analysis.warnings)


class TestParseLocation:
    """Tests for GPS location decoding."""

    def _gps(self, extra=None):
        gps = {1: 'N', 2: (40.0, 42.0, 46.08), 3: 'W', 4: (74.0, 0.0, 21.6)}
        gps.update(extra or {})
        return gps

    def test_western_hemisphere(self):
        """West longitudes are negative."""
        location, dop = _parse_location(self._gps())
        assert location.latitude == pytest.approx(40.7128)
        assert location.longitude == pytest.approx(-74.006)
        assert dop is None

    def test_altitude_below_sea_level(self):
        """Altitude reference 1 negates the altitude."""
        location, _ = _parse_location(self._gps({5: b'\x01', 6: 12.5}))
        assert location.altitude == -12.5

    def test_altitude_above_sea_level(self):
        """Altitude reference 0 keeps the altitude."""
        location, _ = _parse_location(self._gps({5: 0, 6: 12.5}))
        assert location.altitude == 12.5

    def test_dop(self):
        """The dilution of precision is reported."""
        _, dop = _parse_location(self._gps({11: 2.5}))
        assert dop == 2.5

    def test_bad_reference(self):
        """Unknown hemisphere references are rejected."""
        with pytest.raises(ExifAnalysisError):
            _parse_location(self._gps({1: 'X'}))

    def test_bad_altitude_reference(self):
        """Unknown altitude references are rejected."""
        with pytest.raises(ExifAnalysisError):
            _parse_location(self._gps({5: 7, 6: 12.5}))

    def test_missing(self):
        """No coordinates means no location."""
        assert _parse_location({}) == (None, None)


class TestHelpers:
    """Tests for formatting and dimension helpers."""

    def test_compact_aperture(self):
        """Test "f/" becomes "ƒ/"."""
        assert compact_aperture('f/2.8') == 'ƒ/2.8'
        assert compact_aperture('2.8') == '2.8'

    def test_compact_iso(self):
        """Test the space after ISO is removed."""
        assert compact_iso('ISO 400') == 'ISO400'
        assert compact_iso('400') == '400'

    def test_decode_dimensions(self):
        """Pixel size comes from the image header."""
        assert decode_dimensions(make_jpeg(size=(8, 6))) == Dimensions(8, 6)

    def test_decode_dimensions_garbage(self):
        """Unreadable data gives None."""
        assert decode_dimensions(b'garbage') is None


def test_location_value_type():
    """Decoded locations are Location instances."""
    location, _ = _parse_location({1: 'N', 2: (1.0, 0.0, 0.0), 3: 'E', 4: (2.0, 0.0, 0.0)})
    assert location == Location(1.0, 2.0)
