"""
MangroveWatch - Core Utilities
Central configuration, logging, errors, and geospatial helpers.
"""

from mangrovewatch.core.config import Settings, get_settings, settings
from mangrovewatch.core.exceptions import (
    MangroveWatchError,
    ValidationError,
    InvalidTransition,
    NotFound,
    Forbidden,
    ConflictError,
    RateLimitExceeded,
    Unexpected,
    MediaError,
    UnsupportedMediaType,
    PayloadTooLarge,
    TooManyFiles,
    TranscodeFailed,
    StorageUnavailable,
)
from mangrovewatch.core.geo_utils import (
    Point,
    haversine_distance,
    haversine_distance_m,
    validate_coordinates,
)
from mangrovewatch.core.rate_limit import (
    RateLimiter,
    AllowAllRateLimiter,
    SlidingWindowRateLimiter,
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    # Errors
    "MangroveWatchError",
    "ValidationError",
    "InvalidTransition",
    "NotFound",
    "Forbidden",
    "ConflictError",
    "RateLimitExceeded",
    "Unexpected",
    "MediaError",
    "UnsupportedMediaType",
    "PayloadTooLarge",
    "TooManyFiles",
    "TranscodeFailed",
    "StorageUnavailable",
    # Geo
    "Point",
    "haversine_distance",
    "haversine_distance_m",
    "validate_coordinates",
    # Rate limiting
    "RateLimiter",
    "AllowAllRateLimiter",
    "SlidingWindowRateLimiter",
]
