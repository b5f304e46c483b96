"""
Incident report records and inbound field validation
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from mangrovewatch.core.clock import utcnow
from mangrovewatch.core.constants import (
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    TITLE_MAX_LENGTH,
)
from mangrovewatch.core.exceptions import ValidationError
from mangrovewatch.core.geo_utils import Point, validate_coordinates
from mangrovewatch.media.models import Photo


class IncidentType(str, Enum):
    """Kinds of harm a report can describe."""
    ILLEGAL_CUTTING = "illegal_cutting"
    DUMPING = "dumping"
    POLLUTION = "pollution"
    LAND_RECLAMATION = "land_reclamation"
    WILDLIFE_DISTURBANCE = "wildlife_disturbance"
    EROSION = "erosion"
    OIL_SPILL = "oil_spill"
    CONSTRUCTION = "construction"
    OTHER = "other"


class Severity(str, Enum):
    """Reporter-declared harm level."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Priority(str, Enum):
    """Urgency derived from severity."""
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ReportStatus(str, Enum):
    """Verification lifecycle of a report."""
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    VERIFIED = "verified"
    FALSE_POSITIVE = "false_positive"
    RESOLVED = "resolved"


def priority_for(severity: Severity) -> Priority:
    if severity == Severity.CRITICAL:
        return Priority.URGENT
    if severity == Severity.HIGH:
        return Priority.HIGH
    return Priority.NORMAL


@dataclass(frozen=True)
class Comment:
    """Comment left on a report."""
    user_id: str
    text: str
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Upvote:
    user_id: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "created_at": self.created_at.isoformat()}


@dataclass
class Report:
    """
    Environmental incident report.

    The reporter is fixed at creation. Validator fields are only ever set
    together by a review transition.
    """
    title: str
    incident_type: IncidentType
    description: str
    location: Point
    reporter_id: str
    severity: Severity = Severity.MEDIUM
    photos: List[Photo] = field(default_factory=list)
    status: ReportStatus = ReportStatus.PENDING
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    validation_notes: Optional[str] = None
    comments: List[Comment] = field(default_factory=list)
    upvotes: List[Upvote] = field(default_factory=list)
    view_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        # Re-check so no code path can build a report at an impossible position
        self.location = validate_coordinates(self.location.longitude, self.location.latitude)
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def priority(self) -> Priority:
        return priority_for(self.severity)

    @property
    def upvote_count(self) -> int:
        return len(self.upvotes)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    def has_upvoted(self, user_id: str) -> bool:
        return any(upvote.user_id == user_id for upvote in self.upvotes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "incident_type": self.incident_type.value,
            "description": self.description,
            "severity": self.severity.value,
            "priority": self.priority.value,
            "location": self.location.to_geojson(),
            "photos": [photo.to_dict() for photo in self.photos],
            "reporter_id": self.reporter_id,
            "status": self.status.value,
            "validated_by": self.validated_by,
            "validated_at": self.validated_at.isoformat() if self.validated_at else None,
            "validation_notes": self.validation_notes,
            "comments": [comment.to_dict() for comment in self.comments],
            "upvotes": [upvote.to_dict() for upvote in self.upvotes],
            "upvote_count": self.upvote_count,
            "comment_count": self.comment_count,
            "view_count": self.view_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class ReportSummary:
    """Compact report view returned by proximity queries."""
    id: str
    title: str
    incident_type: IncidentType
    severity: Severity
    status: ReportStatus
    longitude: float
    latitude: float
    distance_km: float
    thumbnail_path: Optional[str]
    upvote_count: int
    created_at: datetime

    @classmethod
    def from_report(cls, report: Report, distance_km: float) -> "ReportSummary":
        return cls(
            id=report.id,
            title=report.title,
            incident_type=report.incident_type,
            severity=report.severity,
            status=report.status,
            longitude=report.location.longitude,
            latitude=report.location.latitude,
            distance_km=distance_km,
            thumbnail_path=report.photos[0].thumbnail_path if report.photos else None,
            upvote_count=report.upvote_count,
            created_at=report.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "incident_type": self.incident_type.value,
            "severity": self.severity.value,
            "status": self.status.value,
            "location": {"longitude": self.longitude, "latitude": self.latitude},
            "distance_km": round(self.distance_km, 3),
            "thumbnail_path": self.thumbnail_path,
            "upvote_count": self.upvote_count,
            "created_at": self.created_at.isoformat(),
        }


class ReportFields(BaseModel):
    """Inbound report fields, validated before any side effect."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    incident_type: IncidentType
    description: str = Field(..., min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    severity: Severity = Severity.MEDIUM
    longitude: float = Field(..., ge=-180, le=180, description="Longitude")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude")

    @classmethod
    def parse(cls, data: Any) -> "ReportFields":
        """
        Validate raw fields.

        Raises:
            ValidationError: listing every invalid field
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise ValidationError("Report fields must be an object")

        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in e.errors()
            ]
            raise ValidationError("Invalid report fields", details={"errors": errors})

    @property
    def location(self) -> Point:
        return Point(longitude=self.longitude, latitude=self.latitude)
