"""Queries against the CARTO geometry source.

Every template binds its values, table and column names are only
accepted when they are plain identifiers.
"""
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from async_lru import alru_cache
from fastapi.logger import logger
from sqlalchemy import column, select, table, text
from sqlalchemy.sql.elements import TextClause

from ..errors import BadRequestError, ProviderNotFoundError
from ..models.enum.geostore import GeometryFamily, ProviderType
from ..models.pydantic.geostore import (
    AdminDescriptor,
    CartoProvider,
    Provider,
    UseDescriptor,
)
from .carto import SQL_DIALECT, CartoClient

IDENTIFIER_REGEX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

COUNTRY_SQL = """
    SELECT ST_AsGeoJSON(ST_MakeValid(ST_Simplify(the_geom, :thresh))) AS geojson,
        area_ha, name_0 AS name
    FROM gadm36_countries
    WHERE gid_0 = :iso
"""

REGION_SQL = """
    SELECT ST_AsGeoJSON(ST_MakeValid(ST_Simplify(the_geom, :thresh))) AS geojson,
        area_ha, name_1 AS name
    FROM gadm36_adm1
    WHERE gid_1 = :gid
"""

DISTRICT_SQL = """
    SELECT ST_AsGeoJSON(ST_MakeValid(ST_Simplify(the_geom, :thresh))) AS geojson,
        area_ha, name_2 AS name
    FROM gadm36_adm2
    WHERE gid_2 = :gid
"""

WDPA_SQL = """
    SELECT ST_AsGeoJSON(ST_MakeValid(p.the_geom)) AS geojson,
        (ST_Area(geography(p.the_geom)) / 10000) AS area_ha
    FROM (
        SELECT CASE
            WHEN marine::numeric = 2 THEN NULL
            WHEN ST_NPoints(the_geom) <= 18000 THEN the_geom
            WHEN ST_NPoints(the_geom) BETWEEN 18000 AND 50000
                THEN ST_RemoveRepeatedPoints(the_geom, 0.001)
            ELSE ST_RemoveRepeatedPoints(the_geom, 0.005)
        END AS the_geom
        FROM wdpa_protected_areas
        WHERE wdpaid = :wdpaid
    ) p
"""

USE_SQL = """
    SELECT ST_AsGeoJSON(ST_MakeValid(the_geom)) AS geojson,
        (ST_Area(geography(the_geom)) / 10000) AS area_ha
    FROM {table}
    WHERE cartodb_id = :id
"""

SIMPLIFIED_USE_SQL = """
    SELECT ST_Area(geography(the_geom)) / 10000 AS area_ha,
        CASE
            WHEN (ST_Area(geography(the_geom)) / 10000)::numeric > 1e8
                THEN ST_AsGeoJSON(ST_MakeValid(ST_Simplify(the_geom, 0.1)))
            WHEN (ST_Area(geography(the_geom)) / 10000)::numeric > 1e6
                THEN ST_AsGeoJSON(ST_MakeValid(ST_Simplify(the_geom, 0.005)))
            ELSE ST_AsGeoJSON(ST_MakeValid(the_geom))
        END AS geojson
    FROM {table}
    WHERE cartodb_id = :id
"""

PROVIDER_SQL = """
    SELECT ST_AsGeoJSON(the_geom) AS geojson,
        (ST_Area(geography(the_geom)) / 10000) AS area_ha
    FROM {table}
    WHERE {filter}
"""

REPAIR_SQL = """
    SELECT ST_AsGeoJSON(g.geom) AS geojson,
        ST_Area(geography(g.geom)) / 10000 AS area_ha,
        ST_XMin(g.geom) AS xmin, ST_YMin(g.geom) AS ymin,
        ST_XMax(g.geom) AS xmax, ST_YMax(g.geom) AS ymax
    FROM (
        SELECT ST_CollectionExtract(
            ST_MakeValid(ST_SetSRID(ST_GeomFromGeoJSON(:geojson), 4326)), :family
        ) AS geom
    ) g
"""

AREA_SQL = """
    SELECT ST_Area(geography(g.geom)) / 10000 AS area_ha,
        ST_XMin(g.geom) AS xmin, ST_YMin(g.geom) AS ymin,
        ST_XMax(g.geom) AS xmax, ST_YMax(g.geom) AS ymax
    FROM (
        SELECT ST_SetSRID(ST_GeomFromGeoJSON(:geojson), 4326) AS geom
    ) g
"""

FILTER_TERM_REGEX = re.compile(
    r"\s*(?P<column>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*"
    r"(?:'(?P<string>(?:[^']|'')*)'|(?P<number>-?\d+(?:\.\d+)?))\s*"
)
FILTER_AND_REGEX = re.compile(r"AND\b", re.IGNORECASE)

UpstreamRow = Dict[str, Any]


def quote_identifier(name: str) -> str:
    if not IDENTIFIER_REGEX.match(name):
        raise BadRequestError(f"Invalid identifier: {name}")
    return SQL_DIALECT.identifier_preparer.quote(name)


def parse_provider_filter(filter_: str) -> List[Tuple[str, Any]]:
    """Parse `col = 'text' AND col = 42` into (column, value) pairs."""
    terms: List[Tuple[str, Any]] = []
    position = 0
    while True:
        match = FILTER_TERM_REGEX.match(filter_, position)
        if match is None:
            raise BadRequestError(f"Unsupported provider filter: {filter_}")

        if match.group("string") is not None:
            value: Any = match.group("string").replace("''", "'")
        elif "." in match.group("number"):
            value = float(match.group("number"))
        else:
            value = int(match.group("number"))
        terms.append((match.group("column"), value))

        position = match.end()
        if position == len(filter_):
            return terms

        conjunction = FILTER_AND_REGEX.match(filter_, position)
        if conjunction is None:
            raise BadRequestError(f"Unsupported provider filter: {filter_}")
        position = conjunction.end()


def parse_geometry_row(row: Dict[str, Any]) -> UpstreamRow:
    geojson = row.get("geojson")
    if isinstance(geojson, str):
        geojson = json.loads(geojson)

    parsed: UpstreamRow = {
        "geojson": geojson,
        "area_ha": _as_float(row.get("area_ha")),
        "name": row.get("name"),
    }
    if all(row.get(key) is not None for key in ("xmin", "ymin", "xmax", "ymax")):
        parsed["bbox"] = [
            float(row["xmin"]),
            float(row["ymin"]),
            float(row["xmax"]),
            float(row["ymax"]),
        ]
    return parsed


def _as_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


class UpstreamFetcher:
    """Fetch geometries by descriptor from the CARTO geometry source."""

    def __init__(self, client: CartoClient):
        self.client = client
        self.provider_fetchers: Dict[
            ProviderType, Callable[[Any], Awaitable[Optional[UpstreamRow]]]
        ] = {ProviderType.carto: self.fetch_carto_provider}

    async def _first(self, sql: TextClause, user: Optional[str] = None) -> Optional[UpstreamRow]:
        rows = await self.client.execute(sql, user=user)
        if not rows:
            return None
        return parse_geometry_row(rows[0])

    async def fetch_admin(self, descriptor: AdminDescriptor) -> Optional[UpstreamRow]:
        if descriptor.adm_level == 0:
            sql = text(COUNTRY_SQL).bindparams(
                iso=descriptor.iso, thresh=descriptor.simplify_thresh
            )
        elif descriptor.adm_level == 1:
            sql = text(REGION_SQL).bindparams(
                gid=f"{descriptor.iso}.{descriptor.id1}_1",
                thresh=descriptor.simplify_thresh,
            )
        else:
            sql = text(DISTRICT_SQL).bindparams(
                gid=f"{descriptor.iso}.{descriptor.id1}.{descriptor.id2}_1",
                thresh=descriptor.simplify_thresh,
            )
        logger.info(f"Requesting admin level {descriptor.adm_level} geometry from CARTO")
        return await self._first(sql)

    async def fetch_use(self, descriptor: UseDescriptor) -> Optional[UpstreamRow]:
        template = SIMPLIFIED_USE_SQL if descriptor.simplify else USE_SQL
        sql = text(
            template.format(table=quote_identifier(descriptor.use_table))
        ).bindparams(id=descriptor.id)
        return await self._first(sql)

    async def fetch_wdpa(self, wdpaid: int) -> Optional[UpstreamRow]:
        sql = text(WDPA_SQL).bindparams(wdpaid=wdpaid)
        row = await self._first(sql)
        # Marine areas come back as a row without geometry
        if row is None or row["geojson"] is None:
            return None
        return row

    async def fetch_provider(self, provider: Provider) -> Optional[UpstreamRow]:
        try:
            fetcher = self.provider_fetchers[ProviderType(provider.type)]
        except (KeyError, ValueError):
            logger.error(f"Provider {provider.type} not found")
            raise ProviderNotFoundError(f"Provider {provider.type} not found")
        return await fetcher(provider)

    async def fetch_carto_provider(self, provider: CartoProvider) -> Optional[UpstreamRow]:
        terms = parse_provider_filter(provider.filter)
        where = " AND ".join(
            f"{quote_identifier(name)} = :p{i}" for i, (name, _) in enumerate(terms)
        )
        sql = text(
            PROVIDER_SQL.format(table=quote_identifier(provider.table), filter=where)
        ).bindparams(**{f"p{i}": value for i, (_, value) in enumerate(terms)})
        return await self._first(sql, user=provider.user)

    async def repair_geometry(
        self, geometry: Dict[str, Any], family: GeometryFamily
    ) -> Optional[UpstreamRow]:
        """Make a geometry valid, keeping only the parts of its family."""
        sql = text(REPAIR_SQL).bindparams(
            geojson=json.dumps(geometry), family=int(family)
        )
        row = await self._first(sql)
        if row is None or row["geojson"] is None:
            return None
        return row

    async def area(self, geometry: Dict[str, Any]) -> Optional[UpstreamRow]:
        sql = text(AREA_SQL).bindparams(geojson=json.dumps(geometry))
        return await self._first(sql)

    @alru_cache(maxsize=64, ttl=3600.0)
    async def country_names(self, isos: Tuple[str, ...]) -> Dict[str, str]:
        if not isos:
            return {}
        gid_0 = column("gid_0")
        sql = (
            select([gid_0.label("iso"), column("name_0").label("name")])
            .select_from(table("gadm36_adm0"))
            .where(gid_0.in_(isos))
        )
        rows = await self.client.execute(sql)
        return {row["iso"].upper(): row["name"] for row in rows}

    async def names_for(self, isos: Sequence[str]) -> Dict[str, str]:
        return await self.country_names(tuple(sorted({iso.upper() for iso in isos})))
