import json
from typing import Any, Dict, List, Optional, Sequence

from fastapi.logger import logger
from sqlalchemy import column, func, select, table, text

from .carto import CartoClient
from .descriptor import parse_id, parse_iso, use_table_name, wdpa_descriptor
from .geojson import extract_geometry
from .geostore import GeostoreService
from .upstream import quote_identifier

# Admin areas only count a layer that covers more than 1% of them
NATIONAL_SQL = """
    WITH c AS (
        SELECT the_geom_webmercator,
            ST_Area(the_geom_webmercator) / 10000 AS area_ha
        FROM gadm36_adm0
        WHERE iso = :iso
    ), cl AS (
        SELECT ST_Buffer(ST_Simplify(the_geom_webmercator, 10000), 1) AS the_geom_webmercator,
            slug
        FROM coverage_layers
    )
    SELECT slug
    FROM cl INNER JOIN c ON ST_Intersects(c.the_geom_webmercator, cl.the_geom_webmercator)
    WHERE ((ST_Area(ST_Intersection(c.the_geom_webmercator, cl.the_geom_webmercator)) / 10000)::numeric
        / area_ha::numeric) * 100 > 1
"""

SUBNATIONAL_SQL = """
    WITH c AS (
        SELECT the_geom_webmercator,
            ST_Area(the_geom_webmercator) / 10000 AS area_ha
        FROM gadm36_adm1
        WHERE iso = :iso AND id_1 = :id1
    ), cl AS (
        SELECT ST_Buffer(ST_Simplify(the_geom_webmercator, 10000), 1) AS the_geom_webmercator,
            slug
        FROM coverage_layers
    )
    SELECT slug
    FROM cl INNER JOIN c ON ST_Intersects(c.the_geom_webmercator, cl.the_geom_webmercator)
    WHERE ((ST_Area(ST_Intersection(c.the_geom_webmercator, cl.the_geom_webmercator)) / 10000)::numeric
        / area_ha::numeric) * 100 > 1
"""

USE_SQL = """
    SELECT cl.slug
    FROM coverage_layers cl, {table} c
    WHERE c.cartodb_id = :id AND ST_Intersects(cl.the_geom, c.the_geom)
"""

WDPA_COVERAGE_SQL = """
    WITH p AS (
        SELECT CASE
            WHEN marine::numeric = 2 THEN NULL
            WHEN ST_NPoints(the_geom) <= 18000 THEN the_geom
            WHEN ST_NPoints(the_geom) BETWEEN 18000 AND 50000
                THEN ST_RemoveRepeatedPoints(the_geom, 0.001)
            ELSE ST_RemoveRepeatedPoints(the_geom, 0.005)
        END AS the_geom
        FROM wdpa_protected_areas
        WHERE wdpaid = :wdpaid
    )
    SELECT cl.slug
    FROM coverage_layers cl, p
    WHERE ST_Intersects(cl.the_geom, p.the_geom)
"""


class CoverageIntersector:
    """Coverage layers intersecting an area. Never writes geostores."""

    def __init__(self, client: CartoClient, geostores: GeostoreService):
        self.client = client
        self.geostores = geostores

    async def _slugs(self, sql) -> List[str]:
        rows = await self.client.execute(sql)
        return [row["slug"] for row in rows]

    async def national(self, iso: str) -> List[str]:
        logger.debug(f"Obtaining coverage of country {iso}")
        return await self._slugs(text(NATIONAL_SQL).bindparams(iso=parse_iso(iso)))

    async def subnational(self, iso: str, id1: str) -> List[str]:
        logger.debug(f"Obtaining coverage of region {iso} {id1}")
        sql = text(SUBNATIONAL_SQL).bindparams(
            iso=parse_iso(iso), id1=parse_id(id1, "id1")
        )
        return await self._slugs(sql)

    async def use(self, name: str, feature_id: str) -> List[str]:
        logger.debug(f"Obtaining coverage of use {name} {feature_id}")
        sql = text(
            USE_SQL.format(table=quote_identifier(use_table_name(name)))
        ).bindparams(id=parse_id(feature_id))
        return await self._slugs(sql)

    async def wdpa(self, wdpaid: str) -> List[str]:
        logger.debug(f"Obtaining coverage of protected area {wdpaid}")
        descriptor = wdpa_descriptor(wdpaid)
        return await self._slugs(
            text(WDPA_COVERAGE_SQL).bindparams(wdpaid=descriptor.wdpaid)
        )

    async def world(
        self, geojson: Dict[str, Any], slugs: Optional[Sequence[str]] = None
    ) -> List[str]:
        """Layers intersecting a geometry, optionally limited to `slugs`."""
        geometry = extract_geometry(geojson)
        slug = column("slug")
        sql = (
            select([slug])
            .select_from(table("coverage_layers"))
            .where(
                func.ST_Intersects(
                    column("the_geom"),
                    func.ST_SetSRID(func.ST_GeomFromGeoJSON(json.dumps(geometry)), 4326),
                )
            )
        )
        if slugs:
            sql = sql.where(slug.in_([s.strip() for s in slugs]))
        return await self._slugs(sql)

    async def by_geostore(
        self, geostore_id: str, slugs: Optional[Sequence[str]] = None
    ) -> List[str]:
        record = await self.geostores.find_geostore(geostore_id)
        return await self.world(record.geojson, slugs)
