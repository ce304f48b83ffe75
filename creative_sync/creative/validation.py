"""
Creative file validation
Size caps and magic-byte checks run before any upload is attempted
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import IMAGE_MAX_BYTES, VIDEO_MAX_BYTES
from ..infrastructure.error_handling import ValidationError
from .models import AspectRatio, MediaKind

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


def _mb(n: int) -> str:
    return f"{n / _MB:.2f}MB"


def detect_image_format(data: bytes) -> Optional[str]:
    if data[:2] == b"\xff\xd8":
        return "jpeg"
    if data[:4] == b"\x89PNG":
        return "png"
    if data[:3] == b"GIF":
        return "gif"
    if len(data) > 12 and data[8:12] == b"WEBP":
        return "webp"
    return None


def detect_video_format(data: bytes) -> Optional[str]:
    if len(data) > 8:
        # ISO base media: MP4 and MOV share the ftyp box
        if data[4:8] == b"ftyp":
            return "mp4"
        if data[4:8] == b"moov":
            return "mov"
    if data[:4] == b"\x1a\x45\xdf\xa3":
        return "webm"
    if data[:4] == b"RIFF":
        return "avi"
    return None


def validate_creative_file(
    data: bytes,
    file_name: str,
    media_kind: MediaKind,
    *,
    variant: Optional[int] = None,
    aspect_ratio: Optional[AspectRatio] = None,
) -> str:
    """Validate a downloaded creative and return the detected format.

    Raises ValidationError for empty, oversized or unrecognized images.
    Videos only need to be non-empty and within the cap; an unknown
    container is logged and accepted as ``"unknown"``.
    """
    tags = {"variant": variant, "aspect_ratio": aspect_ratio}
    size = len(data)

    if size == 0:
        raise ValidationError(f"Empty file: {file_name}", **tags)

    max_size = IMAGE_MAX_BYTES if media_kind == MediaKind.IMAGE else VIDEO_MAX_BYTES
    if size > max_size:
        raise ValidationError(
            f"File too large: {_mb(size)} (max: {max_size // _MB}MB) for {file_name}",
            **tags,
        )

    if media_kind == MediaKind.IMAGE:
        fmt = detect_image_format(data)
        if fmt is None:
            raise ValidationError(f"Unsupported image format for {file_name}", **tags)
        return fmt

    fmt = detect_video_format(data)
    if fmt is None:
        logger.warning(f"[File Validation] Could not verify video format for {file_name}, proceeding anyway")
        return "unknown"
    return fmt
