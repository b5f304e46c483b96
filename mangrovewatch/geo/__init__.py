"""
MangroveWatch - Geo Module
Proximity queries over report locations and on-site verification.
"""

from mangrovewatch.geo.index import GeoIndex, GridGeoIndex
from mangrovewatch.geo.site_check import (
    ReferenceSite,
    OnSiteCheck,
    OnSiteVerifier,
    default_reference_sites,
    verify_on_site_location,
)

__all__ = [
    "GeoIndex",
    "GridGeoIndex",
    "ReferenceSite",
    "OnSiteCheck",
    "OnSiteVerifier",
    "default_reference_sites",
    "verify_on_site_location",
]
