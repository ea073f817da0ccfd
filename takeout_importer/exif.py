"""
EXIF metadata extraction for still images.

Decodes the subset of EXIF needed to place a photo in time and space:
orientation, camera, GPS position and time, the local "taken" times and
the exposure settings. A file that simply has no EXIF is not an error;
extract_image_metadata() returns None for it.
"""
from __future__ import annotations

import io
import math
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from PIL import ExifTags, Image, UnidentifiedImageError

from takeout_importer.errors import ExifAnalysisError, ExifDecodeError
from takeout_importer.logging import logger
from takeout_importer.models import (
    CameraSettings,
    Dimensions,
    ExtractedMediaMetadata,
    Location,
    MakeModel,
    Orientation,
)
from takeout_importer.timezones import TimezoneLookup, resolve_activity_time


EXIF_DATETIME_FORMAT = '%Y:%m:%d %H:%M:%S'
GPS_DATETIME_FORMAT = '%Y:%m:%d %H:%M:%S.%f UTC'

# EXIF orientation values we understand; mirrored and undefined ones are
# treated as absent
ORIENTATION_BY_EXIF: Dict[int, Orientation] = {
    1: Orientation.STRAIGHT,
    3: Orientation.UPSIDE_DOWN,
    6: Orientation.ROTATED_LEFT,
    8: Orientation.ROTATED_RIGHT,
}


@dataclass
class ImageAnalysis:
    metadata: ExtractedMediaMetadata
    warnings: List[str] = field(default_factory=list)


# --- Public API --------------------------------------------------------------

def extract_image_metadata(
    data: bytes,
    filename: str,
    timezone_lookup: Optional[TimezoneLookup] = None,
) -> Optional[ImageAnalysis]:
    """Extract EXIF metadata from image file bytes.

    Args:
        data: Raw bytes of the image file
        filename: Name of the file (for logging)
        timezone_lookup: Optional collaborator used to resolve the activity time

    Returns:
        ImageAnalysis, or None when the file has no EXIF data

    Raises:
        ExifDecodeError: If EXIF data is present but cannot be decoded
        ExifAnalysisError: If the GPS reference values are malformed
    """
    tags = _read_exif(data, filename)
    if tags is None:
        return None
    ifd0, exif_ifd, gps_ifd = tags

    warnings: List[str] = []

    taken_local = _parse_local_datetime(exif_ifd.get(ExifTags.Base.DateTimeOriginal), 'original', warnings)
    digitized_local = _parse_local_datetime(exif_ifd.get(ExifTags.Base.DateTimeDigitized), 'digitized', warnings)
    gps_utc = _parse_gps_datetime(gps_ifd, warnings)
    location, dop = _parse_location(gps_ifd)

    resolution = resolve_activity_time(taken_local, gps_utc, location, timezone_lookup)
    warnings.extend(resolution.warnings)

    metadata = ExtractedMediaMetadata(
        orientation=_parse_orientation(ifd0.get(ExifTags.Base.Orientation)),
        taken_local=taken_local,
        digitized_local=digitized_local,
        gps_utc=gps_utc,
        activity_time=resolution.timestamp,
        make_model=_parse_make_model(ifd0),
        camera_settings=_parse_camera_settings(exif_ifd),
        location=location,
        location_dop=dop,
    )
    logger.debug(f"EXIF for {filename}: {metadata}")
    return ImageAnalysis(metadata, warnings)


def decode_dimensions(data: bytes) -> Optional[Dimensions]:
    """Best-effort pixel size of any image Pillow can identify."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.debug(f"Cannot decode image dimensions: {e}")
        return None
    return Dimensions(width, height)


# --- Decoding ----------------------------------------------------------------

def _read_exif(data: bytes, filename: str) -> Optional[Tuple[Dict[int, Any], Dict[int, Any], Dict[int, Any]]]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            exif = img.getexif()
            if not exif:
                logger.debug(f"No EXIF data in {filename}")
                return None
            ifd0 = dict(exif)
            exif_ifd = dict(exif.get_ifd(ExifTags.IFD.Exif))
            gps_ifd = dict(exif.get_ifd(ExifTags.IFD.GPSInfo))
    except UnidentifiedImageError:
        logger.debug(f"Not a recognized image type: {filename}")
        return None
    except struct.error as e:
        logger.debug(f"Truncated EXIF data in {filename}: {e}")
        return None
    except SyntaxError as e:
        if 'not a TIFF' in str(e):
            logger.debug(f"No EXIF directory in {filename}: {e}")
            return None
        raise ExifDecodeError(f"Cannot decode EXIF data in {filename}: {e}") from e
    except (OSError, ValueError, TypeError, KeyError, IndexError, Image.DecompressionBombError) as e:
        raise ExifDecodeError(f"Cannot decode EXIF data in {filename}: {e}") from e

    return ifd0, exif_ifd, gps_ifd


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode('utf-8', errors='replace')
    text = str(value).strip('\x00').strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, (tuple, list)):
        if not value:
            return None
        value = value[0]
    try:
        result = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return result if math.isfinite(result) else None


def _parse_orientation(value: Any) -> Optional[Orientation]:
    try:
        return ORIENTATION_BY_EXIF.get(int(value))
    except (TypeError, ValueError):
        return None


def _parse_make_model(ifd0: Dict[int, Any]) -> Optional[MakeModel]:
    make = _text(ifd0.get(ExifTags.Base.Make))
    model = _text(ifd0.get(ExifTags.Base.Model))
    if make and model:
        return MakeModel(make, model)
    return None


def _parse_local_datetime(value: Any, label: str, warnings: List[str]) -> Optional[datetime]:
    text = _text(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text, EXIF_DATETIME_FORMAT)
    except ValueError:
        warnings.append(f"Can't decode {label} local date/time {text!r}")
        return None


def _parse_gps_datetime(gps_ifd: Dict[int, Any], warnings: List[str]) -> Optional[datetime]:
    date = _text(gps_ifd.get(ExifTags.GPS.GPSDateStamp))
    time = gps_ifd.get(ExifTags.GPS.GPSTimeStamp)
    if date is None or time is None:
        return None

    try:
        hours, minutes, seconds = (float(v) for v in time)
        text = f"{date} {int(hours):02d}:{int(minutes):02d}:{seconds:06.3f} UTC"
    except (TypeError, ValueError, ZeroDivisionError):
        warnings.append(f"Can't decode GPS time stamp {time!r}")
        return None

    try:
        return datetime.strptime(text, GPS_DATETIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        warnings.append(f"Can't decode GPS date/time {text!r}")
        return None


def _parse_dms(value: Any, name: str) -> float:
    try:
        degrees, minutes, seconds = (float(v) for v in value)
    except (TypeError, ValueError, ZeroDivisionError) as e:
        raise ExifAnalysisError(f"Unsupported GPS format - invalid {name}") from e
    result = degrees + minutes / 60.0 + seconds / 3600.0
    if not math.isfinite(result):
        raise ExifAnalysisError(f"Unsupported GPS format - invalid {name}")
    return result


def _parse_location(gps_ifd: Dict[int, Any]) -> Tuple[Optional[Location], Optional[float]]:
    lat_value = gps_ifd.get(ExifTags.GPS.GPSLatitude)
    lon_value = gps_ifd.get(ExifTags.GPS.GPSLongitude)
    if lat_value is None or lon_value is None:
        return None, None

    lat_ref = _text(gps_ifd.get(ExifTags.GPS.GPSLatitudeRef))
    lon_ref = _text(gps_ifd.get(ExifTags.GPS.GPSLongitudeRef))
    if lat_ref not in ('N', 'S') or lon_ref not in ('E', 'W'):
        raise ExifAnalysisError(f"Unsupported GPS format - references {lat_ref!r}/{lon_ref!r}")

    latitude = _parse_dms(lat_value, 'latitude')
    longitude = _parse_dms(lon_value, 'longitude')
    if lat_ref == 'S':
        latitude = -latitude
    if lon_ref == 'W':
        longitude = -longitude

    altitude = None
    alt_value = gps_ifd.get(ExifTags.GPS.GPSAltitude)
    if alt_value is not None:
        altitude = _number(alt_value)
        if altitude is None:
            raise ExifAnalysisError('Unsupported GPS format - invalid altitude')

        alt_ref = gps_ifd.get(ExifTags.GPS.GPSAltitudeRef)
        if isinstance(alt_ref, bytes) and len(alt_ref) == 1:
            alt_ref = alt_ref[0]
        if alt_ref == 1:
            altitude = -altitude
        elif alt_ref != 0:
            raise ExifAnalysisError(f"Unsupported GPS format - altitude reference {alt_ref!r}")

    dop = _number(gps_ifd.get(ExifTags.GPS.GPSDOP))
    return Location(latitude, longitude, altitude), dop


# --- Camera Settings ---------------------------------------------------------

def _format_exposure(seconds: float) -> str:
    if 0 < seconds < 1:
        return f"1/{round(1 / seconds)} s"
    return f"{seconds:g} s"


def compact_aperture(text: str) -> str:
    """Rewrite "f/1.8" as "ƒ/1.8"."""
    if text.startswith('f/'):
        return 'ƒ/' + text[2:]
    return text


def compact_iso(text: str) -> str:
    """Rewrite "ISO 100" as "ISO100"."""
    if text.startswith('ISO '):
        return 'ISO' + text[4:].strip()
    return text


def _parse_camera_settings(exif_ifd: Dict[int, Any]) -> Optional[CameraSettings]:
    exposure = _number(exif_ifd.get(ExifTags.Base.ExposureTime))
    aperture = _number(exif_ifd.get(ExifTags.Base.FNumber))
    focal_length = _number(exif_ifd.get(ExifTags.Base.FocalLength))
    iso = _number(exif_ifd.get(ExifTags.Base.ISOSpeedRatings))
    if exposure is None or aperture is None or focal_length is None or iso is None:
        return None

    return CameraSettings(
        exposure=_format_exposure(exposure),
        aperture=compact_aperture(f"f/{aperture:.1f}"),
        focal_length=f"{focal_length:g} mm",
        iso=compact_iso(f"ISO {int(iso)}"),
    )
