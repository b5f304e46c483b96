"""
MangroveWatch - Media Module
Upload validation, transcoding, and EXIF extraction for report photos.
"""

from mangrovewatch.media.models import UploadedFile, Photo, PhotoMetadata
from mangrovewatch.media.storage import MediaStorage
from mangrovewatch.media.metadata import extract_metadata, dms_to_decimal
from mangrovewatch.media.transcode import render_derivatives, fit_inside, cover_crop
from mangrovewatch.media.processor import MediaProcessor, process_uploads

__all__ = [
    # Records
    "UploadedFile",
    "Photo",
    "PhotoMetadata",
    # Storage
    "MediaStorage",
    # Processing
    "MediaProcessor",
    "process_uploads",
    "extract_metadata",
    "dms_to_decimal",
    "render_derivatives",
    "fit_inside",
    "cover_crop",
]
