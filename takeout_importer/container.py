"""
Detection of video streams appended to still-image files.

Motion Photos (Google "MVIMG_" files) are JPEGs with an MP4 container
appended. The MP4 starts with a 4-byte box size followed by the
``ftypmp42`` type tag, so a tag found at offset 4 means the whole file is
a video and a tag found later marks where the video begins.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from takeout_importer.constants import VIDEO_SIGNATURE, VIDEO_SIGNATURE_OFFSET, is_image_file


class SplitKind(Enum):
    NEITHER = 'neither'
    IMAGE_ONLY = 'image-only'
    VIDEO_ONLY = 'video-only'
    BOTH = 'both'


@dataclass(frozen=True)
class ContainerSplit:
    """Where (if anywhere) an image file's embedded video starts.

    Attributes:
        kind: Classification of the file
        video_offset: Start of the video payload, only set for BOTH
    """
    kind: SplitKind
    video_offset: Optional[int] = None

    def split(self, data: bytes) -> Tuple[bytes, bytes]:
        """Slice data into (image bytes, video bytes)."""
        if self.kind is SplitKind.BOTH:
            return data[:self.video_offset], data[self.video_offset:]
        if self.kind is SplitKind.VIDEO_ONLY:
            return b'', data
        if self.kind is SplitKind.IMAGE_ONLY:
            return data, b''
        return b'', b''


NEITHER = ContainerSplit(SplitKind.NEITHER)
IMAGE_ONLY = ContainerSplit(SplitKind.IMAGE_ONLY)
VIDEO_ONLY = ContainerSplit(SplitKind.VIDEO_ONLY)


def detect_container_split(data: bytes, filename: str) -> ContainerSplit:
    """Classify an image file by the position of an embedded MP4 type tag.

    Args:
        data: Raw file bytes
        filename: File name; only image extensions are examined

    Returns:
        ContainerSplit

    Examples:
        >>> detect_container_split(b'\\0\\0\\0\\x18ftypmp42', 'a.jpg').kind
        <SplitKind.VIDEO_ONLY: 'video-only'>
        >>> detect_container_split(b'\\xff\\xd8' + b'x' * 98 + b'\\0\\0\\0\\x18ftypmp42', 'a.jpg')
        ContainerSplit(kind=<SplitKind.BOTH: 'both'>, video_offset=100)
    """
    if not is_image_file(filename):
        return NEITHER

    index = data.find(VIDEO_SIGNATURE, VIDEO_SIGNATURE_OFFSET)
    if index < 0:
        return IMAGE_ONLY
    if index == VIDEO_SIGNATURE_OFFSET:
        return VIDEO_ONLY
    return ContainerSplit(SplitKind.BOTH, index - VIDEO_SIGNATURE_OFFSET)
