"""
EXIF metadata extraction for uploaded photos
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

import piexif
import pillow_heif

from mangrovewatch.core.constants import HEIF_MIME_TYPES
from mangrovewatch.media.models import PhotoMetadata

logger = logging.getLogger(__name__)

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

Rational = Tuple[int, int]


def _decode_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).strip("\x00 ").strip()
    return text or None


def _parse_datetime(value: Any) -> Optional[datetime]:
    text = _decode_text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text, EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.debug(f"Ignoring malformed EXIF timestamp: {text!r}")
        return None


def _rational(value: Rational) -> float:
    numerator, denominator = value
    if denominator == 0:
        raise ValueError("zero denominator in EXIF rational")
    return numerator / denominator


def dms_to_decimal(dms: Sequence[Rational], ref: Any) -> float:
    """
    Convert an EXIF degrees/minutes/seconds triple to decimal degrees.

    Args:
        dms: Three (numerator, denominator) rationals
        ref: Hemisphere reference (N/S/E/W, bytes or str)

    Returns:
        Signed decimal degrees (south and west are negative)
    """
    degrees = _rational(dms[0]) + _rational(dms[1]) / 60.0 + _rational(dms[2]) / 3600.0
    if _decode_text(ref) in ("S", "s", "W", "w"):
        degrees = -degrees
    return degrees


def _gps_coordinates(gps: Dict[int, Any]) -> Tuple[Optional[float], Optional[float]]:
    required = (
        piexif.GPSIFD.GPSLatitude,
        piexif.GPSIFD.GPSLatitudeRef,
        piexif.GPSIFD.GPSLongitude,
        piexif.GPSIFD.GPSLongitudeRef,
    )
    if not gps or any(tag not in gps for tag in required):
        return None, None

    latitude = dms_to_decimal(gps[piexif.GPSIFD.GPSLatitude], gps[piexif.GPSIFD.GPSLatitudeRef])
    longitude = dms_to_decimal(gps[piexif.GPSIFD.GPSLongitude], gps[piexif.GPSIFD.GPSLongitudeRef])

    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        logger.debug(f"Ignoring out-of-range EXIF GPS position ({latitude}, {longitude})")
        return None, None
    return latitude, longitude


def _heif_exif(image_data: bytes) -> Optional[bytes]:
    """Raw EXIF block of a HEIC/HEIF container, if it carries one."""
    heif_file = pillow_heif.open_heif(image_data)
    return heif_file.info.get("exif")


def extract_metadata(
    image_data: bytes,
    filename: str = "",
    content_type: Optional[str] = None
) -> Optional[PhotoMetadata]:
    """
    Extract capture time, GPS position and device info from raw image bytes.

    Extraction never fails the upload: unreadable or absent EXIF yields None.

    Args:
        image_data: Raw upload bytes
        filename: Original filename, used for logging only
        content_type: Declared MIME type; HEIC/HEIF blocks are read via libheif

    Returns:
        PhotoMetadata, or None when nothing usable was found
    """
    try:
        if (content_type or "").lower() in HEIF_MIME_TYPES:
            exif_block = _heif_exif(image_data)
            if not exif_block:
                return None
            exif = piexif.load(exif_block)
        else:
            exif = piexif.load(image_data)
    except Exception as e:
        logger.warning(f"EXIF extraction failed for {filename or 'upload'}: {e}")
        return None

    zeroth = exif.get("0th") or {}
    exif_ifd = exif.get("Exif") or {}
    gps = exif.get("GPS") or {}

    try:
        latitude, longitude = _gps_coordinates(gps)
    except (ValueError, TypeError, IndexError) as e:
        logger.warning(f"Unreadable GPS block in {filename or 'upload'}: {e}")
        latitude, longitude = None, None

    taken_at = _parse_datetime(exif_ifd.get(piexif.ExifIFD.DateTimeOriginal))
    if taken_at is None:
        taken_at = _parse_datetime(zeroth.get(piexif.ImageIFD.DateTime))

    metadata = PhotoMetadata(
        taken_at=taken_at,
        gps_latitude=latitude,
        gps_longitude=longitude,
        device_make=_decode_text(zeroth.get(piexif.ImageIFD.Make)),
        device_model=_decode_text(zeroth.get(piexif.ImageIFD.Model)),
    )
    return None if metadata.is_empty else metadata
