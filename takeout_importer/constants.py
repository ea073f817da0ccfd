"""
Constants and configuration for Takeout Importer.

Defines file extension sets, MIME guessing, archive suffixes, resolution
limits and the external tool configuration.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Set, Tuple


# --- File Extensions ---------------------------------------------------------

IMAGE_MIME_BY_EXT: Dict[str, str] = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
}

VIDEO_MIME_BY_EXT: Dict[str, str] = {
    'mp4': 'video/mp4',
}

MEDIA_EXT: Set[str] = set(IMAGE_MIME_BY_EXT) | set(VIDEO_MIME_BY_EXT)

ARCHIVE_SUFFIXES: Tuple[str, ...] = ('.tar.gz', '.tgz')

# Takeout ships an HTML index alongside the media; it carries no metadata
TAKEOUT_IGNORED_PATHS: Set[str] = {'Takeout/archive_browser.html'}

VIDEO_MP4_MIME = 'video/mp4'


# --- Limits ------------------------------------------------------------------

# Largest archive member we are prepared to hold in memory
MAX_ENTRY_BYTES = 8 * 1024 ** 3

# Timezone derivation grid and clock drift tolerance
TZ_SNAP_SECONDS = 15 * 60
TZ_TOLERANCE_SECONDS = 5 * 60

# Embedded MP4 type tag inside Motion Photo (MVIMG) JPEGs
VIDEO_SIGNATURE = b'ftypmp42'
VIDEO_SIGNATURE_OFFSET = 4

# compatible_brands values of cameras that write local time into
# creation_time while labelling it UTC
LOCAL_TIME_BRANDS: Set[str] = {'mp41avc1'}

UNSORTED_TAG = 'Unsorted'
TRASH_TAG = 'Trash'


# --- External Tools ----------------------------------------------------------

FFPROBE = os.environ.get('TAKEOUT_IMPORTER_FFPROBE', 'ffprobe')
FFMPEG = os.environ.get('TAKEOUT_IMPORTER_FFMPEG', 'ffmpeg')


# --- Path Configuration ------------------------------------------------------

def get_default_paths() -> Dict[str, Path]:
    """Get default paths relative to current working directory.

    Returns:
        Dictionary with 'log_dir' and 'output_dir'
    """
    base = Path('.')
    return {
        'log_dir': base / 'logs',
        'output_dir': base / 'imported',
    }


# --- File Type Classification ------------------------------------------------

def file_extension(name: str) -> str:
    """Lower-case extension of a file name without the leading dot."""
    return Path(name).suffix.lower().lstrip('.')


def guess_mime_type(filename: str) -> Optional[str]:
    """Guess the MIME type of a media file from its extension.

    Args:
        filename: File name or path

    Returns:
        MIME type string, or None for anything that is not importable media
    """
    ext = file_extension(filename)
    return IMAGE_MIME_BY_EXT.get(ext) or VIDEO_MIME_BY_EXT.get(ext)


def is_image_file(filename: str) -> bool:
    return file_extension(filename) in IMAGE_MIME_BY_EXT


def is_archive(path: str) -> bool:
    """Check whether a path names a gzip-compressed tar archive."""
    return path.lower().endswith(ARCHIVE_SUFFIXES)
