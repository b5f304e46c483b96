"""
On-site verification against known mangrove locations
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.constants import MANGROVE_REFERENCE_SITES
from mangrovewatch.core.geo_utils import haversine_distance, validate_coordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceSite:
    """A named, fixed reference location."""
    name: str
    longitude: float
    latitude: float


@dataclass(frozen=True)
class OnSiteCheck:
    """Outcome of a nearest-site check."""
    is_valid: bool
    nearest_name: str
    distance_km: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "nearest_name": self.nearest_name,
            "distance_km": round(self.distance_km, 3),
        }


def default_reference_sites() -> List[ReferenceSite]:
    return [ReferenceSite(name, lon, lat) for name, lon, lat in MANGROVE_REFERENCE_SITES]


class OnSiteVerifier:
    """
    Checks whether a position is close to a known mangrove site.

    Independent of the indexed reports; the reference set is small and fixed,
    so a linear scan is used.
    """

    def __init__(
        self,
        sites: Optional[Sequence[ReferenceSite]] = None,
        threshold_km: Optional[float] = None,
        config: Optional[Settings] = None
    ):
        config = config or default_settings
        self.sites = list(sites) if sites is not None else default_reference_sites()
        self.threshold_km = threshold_km if threshold_km is not None else config.on_site_threshold_km

        if not self.sites:
            raise ValueError("At least one reference site is required")

    def nearest(self, longitude: float, latitude: float) -> Tuple[ReferenceSite, float]:
        """
        Find the closest reference site.

        Returns:
            (site, distance in km)
        """
        point = validate_coordinates(longitude, latitude)
        return min(
            (
                (site, haversine_distance(point.latitude, point.longitude, site.latitude, site.longitude))
                for site in self.sites
            ),
            key=lambda pair: pair[1],
        )

    def verify(self, longitude: float, latitude: float) -> OnSiteCheck:
        """
        Check a position against the reference set.

        Args:
            longitude: Position longitude
            latitude: Position latitude

        Returns:
            OnSiteCheck; ``is_valid`` when the nearest site is within the threshold

        Raises:
            ValidationError: coordinates out of range
        """
        site, distance_km = self.nearest(longitude, latitude)
        check = OnSiteCheck(
            is_valid=distance_km <= self.threshold_km,
            nearest_name=site.name,
            distance_km=distance_km,
        )
        logger.debug(
            f"On-site check ({longitude}, {latitude}): nearest {site.name} "
            f"at {distance_km:.2f} km, valid={check.is_valid}"
        )
        return check


def verify_on_site_location(longitude: float, latitude: float) -> OnSiteCheck:
    """
    Convenience function to check a position against the default site set.

    Args:
        longitude: Position longitude
        latitude: Position latitude

    Returns:
        OnSiteCheck
    """
    return OnSiteVerifier().verify(longitude, latitude)
