"""
Proximity index for report locations

GeoIndex is the query contract; GridGeoIndex answers it from memory using a
uniform latitude/longitude grid so a query only touches nearby cells.
"""

import logging
import math
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from mangrovewatch.core.config import Settings, settings as default_settings
from mangrovewatch.core.exceptions import ValidationError
from mangrovewatch.core.geo_utils import haversine_distance_m, radius_bounds

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]


class GeoIndex(ABC):
    """Stores point locations by id and answers radius queries."""

    @abstractmethod
    async def upsert(self, item_id: str, longitude: float, latitude: float) -> None:
        ...

    @abstractmethod
    async def remove(self, item_id: str) -> bool:
        ...

    @abstractmethod
    async def nearby_with_distance(
        self,
        longitude: float,
        latitude: float,
        radius_m: float,
        limit: Optional[int] = None
    ) -> List[Tuple[str, float]]:
        """
        Ids within ``radius_m`` metres with their distance, nearest first.

        Ties are broken by id so results are deterministic.
        """

    async def nearby(
        self,
        longitude: float,
        latitude: float,
        radius_m: float,
        limit: Optional[int] = None
    ) -> List[str]:
        """Ids within ``radius_m`` metres, nearest first."""
        matches = await self.nearby_with_distance(longitude, latitude, radius_m, limit)
        return [item_id for item_id, _ in matches]


def check_radius(radius_m: float) -> float:
    try:
        radius = float(radius_m)
    except (TypeError, ValueError):
        raise ValidationError("Radius must be a number", details={"radius": radius_m})
    if math.isnan(radius) or radius < 0:
        raise ValidationError("Radius must be zero or positive", details={"radius": radius_m})
    return radius


class GridGeoIndex(GeoIndex):
    """
    In-memory grid index.

    Points are bucketed into cells of ``cell_degrees`` on each axis. A query
    scans the cells overlapping the bounding box of the search cap (plus one
    cell of margin), then filters candidates by haversine distance.
    """

    def __init__(
        self,
        cell_degrees: Optional[float] = None,
        config: Optional[Settings] = None
    ):
        config = config or default_settings
        self.cell_degrees = cell_degrees if cell_degrees is not None else config.geo_grid_cell_degrees
        if self.cell_degrees <= 0:
            raise ValueError("cell_degrees must be positive")

        self._points: Dict[str, Tuple[float, float]] = {}
        self._cells: Dict[Cell, Set[str]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._points)

    def _row(self, latitude: float) -> int:
        return math.floor(latitude / self.cell_degrees)

    def _col(self, longitude: float) -> int:
        if longitude >= 180:
            longitude -= 360
        return math.floor(longitude / self.cell_degrees)

    def _cell(self, longitude: float, latitude: float) -> Cell:
        return (self._row(latitude), self._col(longitude))

    async def upsert(self, item_id: str, longitude: float, latitude: float) -> None:
        self._discard(item_id)
        self._points[item_id] = (longitude, latitude)
        self._cells[self._cell(longitude, latitude)].add(item_id)

    async def remove(self, item_id: str) -> bool:
        return self._discard(item_id)

    def _discard(self, item_id: str) -> bool:
        previous = self._points.pop(item_id, None)
        if previous is None:
            return False

        cell = self._cell(*previous)
        members = self._cells.get(cell)
        if members is not None:
            members.discard(item_id)
            if not members:
                del self._cells[cell]
        return True

    def _column_ranges(self, longitude: float, half_span: float) -> List[Tuple[int, int]]:
        """Column ranges covering [lon - half, lon + half], split at the antimeridian."""
        west = longitude - half_span
        east = longitude + half_span
        intervals: List[Tuple[float, float]] = []

        if west < -180:
            intervals.append((west + 360, 180.0))
            intervals.append((-180.0, east))
        elif east > 180:
            intervals.append((west, 180.0))
            intervals.append((-180.0, east - 360))
        else:
            intervals.append((west, east))

        return [
            (math.floor(lo / self.cell_degrees) - 1, math.floor(hi / self.cell_degrees) + 1)
            for lo, hi in intervals
        ]

    def _candidate_cells(self, longitude: float, latitude: float, radius_m: float) -> Iterable[Cell]:
        south, north, half_span = radius_bounds(latitude, radius_m)
        first_row = self._row(south) - 1
        last_row = self._row(north) + 1

        if half_span is None or half_span >= 180:
            # Cap reaches a pole or wraps the globe: every longitude qualifies
            return [cell for cell in self._cells if first_row <= cell[0] <= last_row]

        col_ranges = self._column_ranges(longitude, half_span)
        wanted = (last_row - first_row + 1) * sum(hi - lo + 1 for lo, hi in col_ranges)
        if wanted > len(self._cells):
            return [
                cell for cell in self._cells
                if first_row <= cell[0] <= last_row
                and any(lo <= cell[1] <= hi for lo, hi in col_ranges)
            ]

        # Ranges can touch at the antimeridian; keep each cell once
        return list(dict.fromkeys(
            (row, col)
            for row in range(first_row, last_row + 1)
            for lo, hi in col_ranges
            for col in range(lo, hi + 1)
            if (row, col) in self._cells
        ))

    async def nearby_with_distance(
        self,
        longitude: float,
        latitude: float,
        radius_m: float,
        limit: Optional[int] = None
    ) -> List[Tuple[str, float]]:
        radius = check_radius(radius_m)
        matches: List[Tuple[float, str]] = []

        for cell in self._candidate_cells(longitude, latitude, radius):
            for item_id in self._cells.get(cell, ()):
                item_lon, item_lat = self._points[item_id]
                distance = haversine_distance_m(latitude, longitude, item_lat, item_lon)
                if distance <= radius:
                    matches.append((distance, item_id))

        matches.sort()
        if limit is not None:
            matches = matches[:limit]
        return [(item_id, distance) for distance, item_id in matches]
