"""
Utility functions for Takeout Importer.

Common helper functions used across the application.
"""
from __future__ import annotations

import hashlib
import re
from typing import BinaryIO, List, Union


# Chunk size for streaming hash calculation (64KB)
HASH_CHUNK_SIZE = 65536


def human_size(n: int) -> str:
    """Convert bytes to human-readable size string.

    Args:
        n: Size in bytes

    Returns:
        Human-readable string (e.g., "1.2 MB")

    Examples:
        >>> human_size(1000)
        '1000 bytes'
        >>> human_size(1536 * 1024)
        '1.5 MB'
        >>> human_size(3 * 1024 ** 3)
        '3.0 GB'
    """
    if n < 0:
        return f"-{human_size(-n)}"

    if n < 4 * 1024:
        return f"{n} bytes"
    if n < 1500 * 1024:
        return f"{n / 1024:.1f} kB"
    if n < 1500 * 1024 ** 2:
        return f"{n / 1024 ** 2:.1f} MB"
    return f"{n / 1024 ** 3:.1f} GB"


_DIGITS = re.compile(r'(\d+)')


def natural_key(text: str) -> List[Union[int, str]]:
    """Sort key that orders embedded numbers numerically.

    Examples:
        >>> sorted(['IMG_10.jpg', 'IMG_9.jpg'], key=natural_key)
        ['IMG_9.jpg', 'IMG_10.jpg']
    """
    return [int(part) if part.isdigit() else part.lower() for part in _DIGITS.split(text)]


def normalize_name(text: str) -> str:
    """Case- and whitespace-insensitive form of a tag or place name."""
    return ' '.join(text.split()).casefold()


def calculate_hash(
    data: bytes | BinaryIO,
    algorithm: str = 'sha256',
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Calculate the content hash stored alongside an attachment.

    Args:
        data: File bytes or file-like object to hash
        algorithm: Hash algorithm ('sha256', 'md5', 'sha1')
        chunk_size: Chunk size for streaming reads

    Returns:
        Hex digest string of the hash
    """
    hasher = hashlib.new(algorithm)

    if isinstance(data, bytes):
        hasher.update(data)
    else:
        while True:
            chunk = data.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)

    return hasher.hexdigest()
