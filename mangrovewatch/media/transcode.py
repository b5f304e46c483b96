"""
Image decoding and derivative rendering with OpenCV and libheif
"""

import logging
import math
from typing import Optional, Tuple

import cv2
import numpy as np
import pillow_heif

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.constants import HEIF_MIME_TYPES
from mangrovewatch.core.exceptions import TranscodeFailed

logger = logging.getLogger(__name__)


def decode_heif(image_data: bytes, filename: str) -> np.ndarray:
    """Decode HEIC/HEIF bytes with libheif into a BGR image."""
    try:
        heif_file = pillow_heif.open_heif(image_data, convert_hdr_to_8bit=True)
        pixels = np.asarray(heif_file)
    except (ValueError, RuntimeError, OSError) as e:
        raise TranscodeFailed(filename, f"HEIF decoder error: {e}")

    conversion = cv2.COLOR_RGBA2BGR if heif_file.mode == "RGBA" else cv2.COLOR_RGB2BGR
    return cv2.cvtColor(pixels, conversion)


def decode_image(image_data: bytes, filename: str, content_type: Optional[str] = None) -> np.ndarray:
    """
    Decode raw upload bytes into a BGR image.

    HEIC/HEIF goes through libheif; every other format through OpenCV.

    Raises:
        TranscodeFailed: if the data cannot be decoded
    """
    if (content_type or "").lower() in HEIF_MIME_TYPES:
        return decode_heif(image_data, filename)

    buffer = np.frombuffer(image_data, np.uint8)
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise TranscodeFailed(filename, f"decoder error: {e}")

    if image is None:
        raise TranscodeFailed(filename, "unreadable or unsupported image data")
    return image


def validate_dimensions(image: np.ndarray, filename: str, min_dimension: int) -> None:
    """Reject images smaller than ``min_dimension`` on either side."""
    height, width = image.shape[:2]
    if width < min_dimension or height < min_dimension:
        raise TranscodeFailed(
            filename,
            f"image must be at least {min_dimension}x{min_dimension} pixels (got {width}x{height})",
        )


def fit_inside(image: np.ndarray, max_width: int, max_height: int) -> np.ndarray:
    """
    Downscale so the image fits inside max_width x max_height.

    Aspect ratio is preserved and images that already fit are left as-is.
    """
    height, width = image.shape[:2]
    scale = min(max_width / width, max_height / height)
    if scale >= 1:
        return image

    size = (max(1, round(width * scale)), max(1, round(height * scale)))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def cover_crop(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Scale to cover width x height, then crop the centre to exactly that size."""
    src_height, src_width = image.shape[:2]
    scale = max(width / src_width, height / src_height)

    scaled_width = max(width, math.ceil(src_width * scale))
    scaled_height = max(height, math.ceil(src_height * scale))
    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(image, (scaled_width, scaled_height), interpolation=interpolation)

    left = (scaled_width - width) // 2
    top = (scaled_height - height) // 2
    return resized[top:top + height, left:left + width]


def encode_webp(image: np.ndarray, quality: int, filename: str) -> bytes:
    """Encode as lossy WebP at the given quality (1-100)."""
    try:
        ok, encoded = cv2.imencode(".webp", image, [cv2.IMWRITE_WEBP_QUALITY, quality])
    except cv2.error as e:
        raise TranscodeFailed(filename, f"encoder error: {e}")

    if not ok:
        raise TranscodeFailed(filename, "WebP encoding failed")
    return encoded.tobytes()


def render_derivatives(
    image_data: bytes,
    filename: str,
    content_type: Optional[str] = None,
    config: Optional[Settings] = None
) -> Tuple[bytes, bytes]:
    """
    Produce the display image and thumbnail for one upload.

    Args:
        image_data: Raw upload bytes
        filename: Original filename, named in any raised error
        content_type: Declared MIME type, selects the decoder
        config: Settings carrying derivative geometry and quality

    Returns:
        (display_webp_bytes, thumbnail_webp_bytes)
    """
    config = config or default_settings

    image = decode_image(image_data, filename, content_type)
    validate_dimensions(image, filename, config.min_image_dimension)

    display = fit_inside(image, config.display_max_width, config.display_max_height)
    thumbnail = cover_crop(image, config.thumbnail_width, config.thumbnail_height)

    display_bytes = encode_webp(display, config.display_quality, filename)
    thumbnail_bytes = encode_webp(thumbnail, config.thumbnail_quality, filename)

    logger.debug(
        f"Rendered {filename}: {image.shape[1]}x{image.shape[0]} -> "
        f"{display.shape[1]}x{display.shape[0]} display, "
        f"{thumbnail.shape[1]}x{thumbnail.shape[0]} thumbnail"
    )
    return display_bytes, thumbnail_bytes
