"""
Media records produced by the upload pipeline
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.constants import DERIVATIVE_MIME_TYPE


@dataclass(frozen=True)
class UploadedFile:
    """
    A decoded upload as handed over by the HTTP layer.

    ``size`` is the size the client declared; when absent the byte length
    of ``data`` is used.
    """
    filename: str
    content_type: str
    data: bytes
    size: Optional[int] = None

    @property
    def byte_size(self) -> int:
        return len(self.data) if self.size is None else max(self.size, len(self.data))


@dataclass(frozen=True)
class PhotoMetadata:
    """Metadata extracted from the EXIF block of an upload."""
    taken_at: Optional[datetime] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    device_make: Optional[str] = None
    device_model: Optional[str] = None

    @property
    def has_gps(self) -> bool:
        return self.gps_latitude is not None and self.gps_longitude is not None

    @property
    def is_empty(self) -> bool:
        return (
            self.taken_at is None and not self.has_gps
            and self.device_make is None and self.device_model is None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taken_at": self.taken_at.isoformat() if self.taken_at else None,
            "gps_coordinates": {
                "latitude": self.gps_latitude,
                "longitude": self.gps_longitude,
            } if self.has_gps else None,
            "device_info": {
                "make": self.device_make,
                "model": self.device_model,
            },
        }


@dataclass(frozen=True)
class Photo:
    """
    Photo evidence attached to a report.

    Paths are storage-relative; the presentation layer joins them with the
    public base URL.
    """
    filename: str
    original_name: str
    path: str
    thumbnail_path: str
    size: int
    mime_type: str = DERIVATIVE_MIME_TYPE
    metadata: Optional[PhotoMetadata] = None
    uploaded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "filename": self.filename,
            "original_name": self.original_name,
            "path": self.path,
            "thumbnail_path": self.thumbnail_path,
            "size": self.size,
            "mime_type": self.mime_type,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
