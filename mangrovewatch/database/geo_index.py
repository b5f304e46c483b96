"""
PostGIS-backed proximity index
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import cast, delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session
from geoalchemy2 import Geography

from mangrovewatch.core.clock import utcnow
from mangrovewatch.geo.index import GeoIndex, check_radius

from .models import ReportLocation
from .repository import SqlRepository

logger = logging.getLogger(__name__)


class PostGISGeoIndex(SqlRepository, GeoIndex):
    """
    Radius queries on the report_locations geography column.

    ST_DWithin uses the GiST index; distances are on the sphere so they
    agree with the in-memory haversine index.
    """

    async def upsert(self, item_id: str, longitude: float, latitude: float) -> None:
        location = ReportLocation.at(item_id, longitude, latitude)
        statement = insert(ReportLocation).values(
            report_id=location.report_id,
            location=location.location,
            updated_at=location.updated_at,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[ReportLocation.report_id],
            set_={"location": statement.excluded.location, "updated_at": utcnow()},
        )

        def work(session: Session) -> None:
            session.execute(statement)

        await self._run(work)

    async def remove(self, item_id: str) -> bool:
        def work(session: Session) -> bool:
            result = session.execute(delete(ReportLocation).where(ReportLocation.report_id == item_id))
            return result.rowcount > 0

        return await self._run(work)

    async def nearby_with_distance(
        self,
        longitude: float,
        latitude: float,
        radius_m: float,
        limit: Optional[int] = None
    ) -> List[Tuple[str, float]]:
        radius = check_radius(radius_m)
        center = cast(func.ST_SetSRID(func.ST_MakePoint(longitude, latitude), 4326), Geography)
        distance = func.ST_Distance(ReportLocation.location, center, False).label("distance")

        query = (
            select(ReportLocation.report_id, distance)
            .where(func.ST_DWithin(ReportLocation.location, center, radius, False))
            .order_by(distance, ReportLocation.report_id)
        )
        if limit is not None:
            query = query.limit(limit)

        def work(session: Session) -> List[Tuple[str, float]]:
            return [(row.report_id, float(row.distance)) for row in session.execute(query)]

        matches = await self._run(work)
        logger.debug(f"PostGIS nearby ({longitude}, {latitude}) r={radius}m: {len(matches)} matches")
        return matches
