"""
MangroveWatch - Constants and Reference Data
Static values used throughout the application.
"""

from typing import Dict, List, Tuple

# =============================================================================
# REWARDS
# =============================================================================

# Points credited to a reporter on submission, by severity
SUBMISSION_POINTS: Dict[str, int] = {
    "critical": 50,
    "high": 30,
}
DEFAULT_SUBMISSION_POINTS: int = 20

# Points credited to a validator, by target status
VALIDATION_POINTS_VERIFIED: int = 15
VALIDATION_POINTS_OTHER: int = 5

# Bonus credited to the reporter when a report is verified
VERIFIED_REPORTER_BONUS: int = 10

COMMENT_POINTS: int = 2
UPVOTE_POINTS: int = 1

# Contribution level thresholds (points), highest first
CONTRIBUTION_LEVELS: List[Tuple[int, str]] = [
    (1000, "Platinum"),
    (500, "Gold"),
    (200, "Silver"),
    (0, "Bronze"),
]

# =============================================================================
# REPORT LIMITS
# =============================================================================

TITLE_MAX_LENGTH: int = 200
DESCRIPTION_MIN_LENGTH: int = 10
DESCRIPTION_MAX_LENGTH: int = 2000
COMMENT_MAX_LENGTH: int = 1000
VALIDATION_NOTES_MAX_LENGTH: int = 1000

# =============================================================================
# MEDIA
# =============================================================================

# Extension used when the original filename carries none
MIME_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
}

# Decoded with libheif instead of OpenCV
HEIF_MIME_TYPES = frozenset({"image/heic", "image/heif"})

DERIVATIVE_MIME_TYPE: str = "image/webp"
DERIVATIVE_EXTENSION: str = ".webp"
THUMBNAIL_PREFIX: str = "thumb_"

TEMP_DIR: str = "uploads/temp"
DISPLAY_DIR: str = "uploads/reports"
THUMBNAIL_DIR: str = "uploads/thumbnails"

# =============================================================================
# KNOWN MANGROVE SITES (name, longitude, latitude)
# =============================================================================

MANGROVE_REFERENCE_SITES: List[Tuple[str, float, float]] = [
    # Mumbai Metropolitan Region
    ("Mahim Creek Mangroves", 72.8410, 19.0440),
    ("Vikhroli Mangroves", 72.9330, 19.1120),
    ("Thane Creek Flamingo Sanctuary", 72.9780, 19.1320),
    ("Gorai-Manori Mangroves", 72.7920, 19.2330),
    ("Airoli Mangroves", 72.9930, 19.1610),
    # West coast
    ("Achra-Ratnagiri Mangroves", 73.3100, 17.0100),
    ("Goa Chorao Island Mangroves", 73.8730, 15.5130),
    ("Kundapura Mangroves", 74.6900, 13.6300),
    ("Kannur Mangroves", 75.3700, 11.8700),
    ("Gulf of Kachchh Mangroves", 69.6700, 22.7500),
    # East coast
    ("Sundarbans", 88.8800, 21.9500),
    ("Bhitarkanika", 86.9500, 20.7200),
    ("Coringa", 82.2900, 16.8000),
    ("Krishna Estuary Mangroves", 80.9500, 15.8500),
    ("Pichavaram", 79.7900, 11.4300),
    ("Muthupet", 79.5100, 10.3900),
    # Islands
    ("Andaman Mangroves", 92.7300, 11.6200),
]
