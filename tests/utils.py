import asyncio
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from geostore_api.crud.geostore import descriptor_key
from geostore_api.errors import ImmutableRecordError
from geostore_api.models.pydantic.geostore import GeostoreRecord, LookupPath
from geostore_api.utils.carto import render_sql

Rows = List[Dict[str, Any]]
Handler = Callable[[Dict[str, Any]], Rows]


class FakeCartoClient:
    """Answers rendered SQL with the handler of the first matching
    substring."""

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None):
        self.handlers: Dict[str, Handler] = dict(handlers or {})
        self.queries: List[str] = []
        self.users: List[Optional[str]] = []

    def queries_matching(self, fragment: str) -> List[str]:
        return [query for query in self.queries if fragment in query]

    async def execute(self, sql, user: Optional[str] = None) -> Rows:
        query = render_sql(sql)
        self.queries.append(query)
        self.users.append(user)
        # Let concurrent callers interleave
        await asyncio.sleep(0)
        for fragment, handler in self.handlers.items():
            if fragment in query:
                return handler(sql.compile().params)
        return []

    async def close(self) -> None:
        pass


def _lookup_value(info: Dict[str, Any], path: LookupPath) -> Any:
    value: Any = info
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _key(lookup: Dict[LookupPath, Any]) -> str:
    return json.dumps(descriptor_key(lookup), sort_keys=True)


class FakeGeometryStore:
    def __init__(self, records: Iterable[GeostoreRecord] = ()):
        self.records: Dict[str, GeostoreRecord] = {r.hash: r for r in records}
        self.backfilled: List[Tuple[str, Optional[float], Optional[List[float]]]] = []
        self.descriptors: Dict[str, str] = {}

    async def find_by_hash(self, geostore_hash: str) -> Optional[GeostoreRecord]:
        return self.records.get(geostore_hash)

    async def find_by_hashes(self, hashes: List[str]) -> List[GeostoreRecord]:
        return [self.records[h] for h in hashes if h in self.records]

    async def find_by_descriptor(
        self, lookup: Dict[LookupPath, Any]
    ) -> Optional[GeostoreRecord]:
        for record in self.records.values():
            if all(
                _lookup_value(record.info, path) == value
                for path, value in lookup.items()
            ):
                return record
        indexed = self.descriptors.get(_key(lookup))
        if indexed is not None:
            return self.records[indexed]
        return None

    async def add_descriptor(
        self, lookup: Dict[LookupPath, Any], geostore_hash: str
    ) -> None:
        self.descriptors.setdefault(_key(lookup), geostore_hash)

    async def list_national(self) -> List[Tuple[str, str]]:
        return sorted(
            (record.hash, record.info["iso"])
            for record in self.records.values()
            if record.info.get("iso") is not None and record.info.get("id1") is None
        )

    async def upsert(self, record: GeostoreRecord) -> GeostoreRecord:
        existing = self.records.get(record.hash)
        if existing is None:
            self.records[record.hash] = record
            return record
        if existing.lock:
            raise ImmutableRecordError(record.hash)
        return existing

    async def backfill(
        self,
        geostore_hash: str,
        area_ha: Optional[float] = None,
        bbox: Optional[List[float]] = None,
    ) -> None:
        self.backfilled.append((geostore_hash, area_ha, bbox))
        record = self.records[geostore_hash]
        self.records[geostore_hash] = record.copy(
            update={
                "area_ha": record.area_ha if record.area_ha is not None else area_ha,
                "bbox": record.bbox if record.bbox is not None else bbox,
            }
        )


class FakeAliasTable:
    def __init__(self, aliases: Optional[Dict[str, str]] = None):
        self.aliases = dict(aliases or {})

    async def resolve(self, geostore_id: str) -> str:
        return self.aliases.get(geostore_id, geostore_id)

    async def resolve_many(self, geostore_ids: List[str]) -> List[str]:
        return [self.aliases.get(i, i) for i in geostore_ids]


def echo_repair(area_ha: float = 10.0) -> Handler:
    """Repair handler returning the submitted geometry unchanged."""

    def handler(params: Dict[str, Any]) -> Rows:
        return [
            {
                "geojson": params["geojson"],
                "area_ha": area_ha,
                "xmin": 0,
                "ymin": 0,
                "xmax": 1,
                "ymax": 1,
            }
        ]

    return handler


def geometry_rows(geometry: Dict[str, Any], area_ha: float, **extra) -> Handler:
    def handler(params: Dict[str, Any]) -> Rows:
        return [{"geojson": json.dumps(geometry), "area_ha": area_ha, **extra}]

    return handler


def no_rows(params: Dict[str, Any]) -> Rows:
    return []


def slug_rows(*slugs: str) -> Handler:
    def handler(params: Dict[str, Any]) -> Rows:
        return [{"slug": slug} for slug in slugs]

    return handler
