"""
MangroveWatch - Error Taxonomy
Typed errors raised by the core and surfaced to collaborators.
"""

from typing import Any, Dict, List, Optional, Tuple


class MangroveWatchError(Exception):
    """Base class for every error the core raises on purpose."""

    code = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(MangroveWatchError):
    """Malformed input, rejected before any side effect."""

    code = "validation_error"


class InvalidTransition(ValidationError):
    """A status change the state machine does not allow."""

    code = "invalid_transition"

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move report from '{current}' to '{target}'",
            details={"current_status": current, "target_status": target},
        )
        self.current = current
        self.target = target


class NotFound(MangroveWatchError):
    """Report, user, badge or notification id did not resolve."""

    code = "not_found"

    def __init__(self, kind: str, identifier: Any):
        super().__init__(f"{kind} not found: {identifier}", details={"id": str(identifier)})
        self.kind = kind
        self.identifier = identifier


class Forbidden(MangroveWatchError):
    """Role or ownership check failed."""

    code = "forbidden"


class ConflictError(MangroveWatchError):
    """Duplicate value for a unique field."""

    code = "conflict"


class RateLimitExceeded(MangroveWatchError):
    """Caller exhausted its request budget."""

    code = "rate_limited"


class Unexpected(MangroveWatchError):
    """Catch-all for failures that have no better classification."""

    code = "unexpected"


# =============================================================================
# MEDIA
# =============================================================================


class MediaError(MangroveWatchError):
    """
    Base class for upload failures.

    ``failed_files`` lists every (filename, reason) pair that made the batch
    fail, so a single raised error can report all of them.
    """

    code = "media_error"

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details=details)
        self.filename = filename
        self.failed_files: List[Tuple[str, str]] = []
        if filename is not None:
            self.failed_files.append((filename, message))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["failed_files"] = [
            {"filename": name, "reason": reason} for name, reason in self.failed_files
        ]
        return data


class UnsupportedMediaType(MediaError):
    code = "unsupported_media_type"

    def __init__(self, filename: str, content_type: str):
        super().__init__(
            f"{filename}: only JPEG, PNG, WebP, and HEIC images are allowed (got {content_type})",
            filename=filename,
            details={"content_type": content_type},
        )


class PayloadTooLarge(MediaError):
    code = "payload_too_large"

    def __init__(self, filename: str, size: int, limit: int):
        super().__init__(
            f"{filename}: file size must be less than {limit // (1024 * 1024)}MB",
            filename=filename,
            details={"size": size, "limit": limit},
        )


class TooManyFiles(MediaError):
    code = "too_many_files"

    def __init__(self, count: int, limit: int):
        super().__init__(
            f"Maximum {limit} files allowed per upload (got {count})",
            details={"count": count, "limit": limit},
        )


class TranscodeFailed(MediaError):
    code = "transcode_failed"

    def __init__(self, filename: str, reason: str = ""):
        message = f"Failed to process image: {filename}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, filename=filename, details={"reason": reason})


class StorageUnavailable(MediaError):
    """Transient infrastructure fault while reading or writing storage."""

    code = "storage_unavailable"
