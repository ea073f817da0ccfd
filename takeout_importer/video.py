"""
Video metadata extraction through ffprobe.

ffprobe's human readable diagnostics (written to stderr) are parsed line
by line as ``key: value`` pairs. Only these keys are understood:

    compatible_brands  camera signature; some cameras write local time
                       into creation_time while labelling it UTC
    creation_time      RFC 3339 timestamp, first occurrence wins
    location           ISO 6709 "<lat><lon>[<alt>]/"
    rotate             0, 90, 180 or 270
    Duration           "H:MM:SS.ff, start: ..., bitrate: ..."
    Stream #...        first "Video:" stream line gives "WxH"
"""
from __future__ import annotations

import os
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional

from takeout_importer.constants import FFMPEG, FFPROBE, LOCAL_TIME_BRANDS
from takeout_importer.errors import AmbiguousTimeError, RemoteServiceError, VideoAnalysisError
from takeout_importer.logging import logger
from takeout_importer.models import Dimensions, Location, Orientation
from takeout_importer.timezones import TimezoneLookup, localize


ORIENTATION_BY_ROTATE: Dict[str, Orientation] = {
    '0': Orientation.STRAIGHT,
    '90': Orientation.ROTATED_LEFT,
    '180': Orientation.UPSIDE_DOWN,
    '270': Orientation.ROTATED_RIGHT,
}

_COORDINATE = r'[+-]\d+(?:\.\d*)?'
_ISO6709 = re.compile(rf'^({_COORDINATE})({_COORDINATE})({_COORDINATE})?$')
_DIMENSIONS = re.compile(r'^(\d+)x(\d+)$')


@dataclass
class VideoAnalysis:
    """Everything ffprobe told us about one video.

    Attributes:
        activity_time: Creation time, aware
        location: Recording location
        orientation: Display rotation
        dimensions: Raw (unrotated) pixel dimensions
        duration_seconds: Whole seconds
        thumbnail: JPEG bytes of one frame, when requested and available
        warnings: Problems met along the way
    """
    activity_time: Optional[datetime] = None
    location: Optional[Location] = None
    orientation: Optional[Orientation] = None
    dimensions: Optional[Dimensions] = None
    duration_seconds: Optional[int] = None
    thumbnail: Optional[bytes] = None
    warnings: List[str] = field(default_factory=list)


# --- Probe Output Parsing ----------------------------------------------------

def parse_probe_output(text: str, assumed_timezone: Optional[tzinfo] = None) -> VideoAnalysis:
    """Parse ffprobe's stderr output.

    Args:
        text: The diagnostic text
        assumed_timezone: Zone for creation times known to be local time

    Returns:
        VideoAnalysis without thumbnail
    """
    result = VideoAnalysis()
    local_time = False
    creation_time: Optional[str] = None

    for line in text.splitlines():
        key, sep, value = line.partition(':')
        if not sep:
            continue
        key = key.strip()
        value = value.strip()

        if key == 'compatible_brands':
            if value in LOCAL_TIME_BRANDS:
                local_time = True
        elif key == 'creation_time':
            if creation_time is None:
                creation_time = value
        elif key == 'location':
            if result.location is None:
                result.location = _parse_location(value)
        elif key == 'rotate':
            if result.orientation is None:
                result.orientation = ORIENTATION_BY_ROTATE.get(value)
        elif key == 'Duration':
            if result.duration_seconds is None:
                result.duration_seconds = _parse_duration(value)
        elif key.startswith('Stream #') and 'Video:' in value:
            if result.dimensions is None:
                result.dimensions = _parse_dimensions(value)

    if creation_time is not None:
        result.activity_time = _parse_creation_time(creation_time, local_time, assumed_timezone, result.warnings)

    return result


def _parse_creation_time(
    value: str,
    local_time: bool,
    assumed_timezone: Optional[tzinfo],
    warnings: List[str],
) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        warnings.append(f"Can't decode creation time {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    if not local_time:
        return parsed

    if assumed_timezone is None:
        warnings.append(f"Creation time {value} is local time but no timezone was assumed")
        return None
    try:
        return localize(parsed.replace(tzinfo=None), assumed_timezone)
    except AmbiguousTimeError as e:
        warnings.append(str(e))
        return None


def _parse_location(value: str) -> Optional[Location]:
    """Parse "+27.4670+153.0250/" style ISO 6709 coordinates.

    Examples:
        >>> _parse_location('-27.4670+153.0250/')
        Location(latitude=-27.467, longitude=153.025, altitude=None)
    """
    m = _ISO6709.match(value.rstrip('/'))
    if not m:
        return None
    altitude = float(m.group(3)) if m.group(3) else None
    return Location(float(m.group(1)), float(m.group(2)), altitude)


def _parse_duration(value: str) -> Optional[int]:
    hms = value.split(',')[0].split('.')[0].strip()
    parts = hms.split(':')
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = (int(p) for p in parts)
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def _parse_dimensions(value: str) -> Optional[Dimensions]:
    for part in value.split(','):
        tokens = part.split()
        if not tokens:
            continue
        m = _DIMENSIONS.match(tokens[0])
        if m:
            return Dimensions(int(m.group(1)), int(m.group(2)))
    return None


# --- External Tools ----------------------------------------------------------

def analyse_video(
    data: bytes,
    assumed_timezone: Optional[tzinfo] = None,
    timezone_lookup: Optional[TimezoneLookup] = None,
    thumbnail_size: Optional[int] = None,
) -> VideoAnalysis:
    """Probe video bytes with ffprobe.

    Args:
        data: Raw video bytes
        assumed_timezone: Zone for creation times known to be local time
        timezone_lookup: Optional collaborator that moves the creation time
            into the zone of the recording location
        thumbnail_size: Longest thumbnail side; None skips the thumbnail

    Returns:
        VideoAnalysis; empty with a warning when ffprobe cannot be run

    Raises:
        VideoAnalysisError: If ffprobe's output is not UTF-8
    """
    with tempfile.NamedTemporaryFile(suffix='.mp4', delete=False) as f:
        f.write(data)
        path = f.name

    try:
        try:
            completed = subprocess.run([FFPROBE, path], capture_output=True, check=False)
        except OSError as e:
            logger.debug(f"Cannot run {FFPROBE}: {e}")
            return VideoAnalysis(warnings=[f"Cannot run {FFPROBE}: {e}"])

        if completed.returncode != 0:
            return VideoAnalysis(warnings=[f"{FFPROBE} exited with status {completed.returncode}"])

        try:
            text = completed.stderr.decode('utf-8')
        except UnicodeDecodeError as e:
            raise VideoAnalysisError(f"{FFPROBE} output is not UTF-8: {e}") from e

        result = parse_probe_output(text, assumed_timezone)

        if result.location is not None and result.activity_time is not None and timezone_lookup is not None:
            try:
                info = timezone_lookup.lookup(result.location, result.activity_time)
                result.activity_time = result.activity_time.astimezone(info.tzinfo)
            except (RemoteServiceError, ValueError) as e:
                result.warnings.append(f"Timezone lookup failed: {e}")

        if thumbnail_size is not None and result.dimensions is not None:
            size = result.dimensions.rotated(result.orientation).fit_within(thumbnail_size)
            result.thumbnail = extract_video_thumbnail(path, size)

        return result
    finally:
        os.unlink(path)


def extract_video_thumbnail(path: str, size: Dimensions) -> Optional[bytes]:
    """Grab the first frame of a video as a JPEG scaled to size.

    Returns:
        JPEG bytes, or None if ffmpeg fails or produces nothing
    """
    cmd = [
        FFMPEG, '-v', 'error',
        '-i', path,
        '-frames:v', '1',
        '-vf', f"scale={size.width}:{size.height}",
        '-f', 'image2pipe', '-vcodec', 'mjpeg',
        '-',
    ]
    try:
        completed = subprocess.run(cmd, capture_output=True, check=False)
    except OSError as e:
        logger.debug(f"Cannot run {FFMPEG}: {e}")
        return None

    if completed.returncode != 0 or not completed.stdout:
        logger.debug(f"No thumbnail for {path}: status {completed.returncode}")
        return None
    return completed.stdout
