from typing import Any, Dict, List, Optional, Tuple

from fastapi.logger import logger
from sqlalchemy import and_, false, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.sql import Select

from ..application import ContextEngine, db
from ..errors import ImmutableRecordError
from ..models.orm.descriptors import GeostoreDescriptor
from ..models.orm.geostore import Geostore as ORMGeostore
from ..models.pydantic.geostore import GeostoreRecord, LookupPath

GEOSTORE_TABLE = ORMGeostore.__table__
DESCRIPTOR_TABLE = GeostoreDescriptor.__table__


def _nest(path: LookupPath, value: Any, target: Dict[str, Any]) -> None:
    *parents, leaf = path
    for key in parents:
        target = target.setdefault(key, {})
    target[leaf] = value


def descriptor_clause(lookup: Dict[LookupPath, Any]):
    """Match every lookup field exactly.

    Set fields are matched by jsonb containment, so numbers compare by
    value. Unset fields must be null or absent.
    """
    contained: Dict[str, Any] = {}
    clauses = []
    for path, value in lookup.items():
        if value is None:
            field = ORMGeostore.info
            for key in path:
                field = field[key]
            clauses.append(field.astext.is_(None))
        else:
            _nest(path, value, contained)

    if contained:
        clauses.insert(0, ORMGeostore.info.contains(contained))
    return and_(*clauses)


def descriptor_key(lookup: Dict[LookupPath, Any]) -> Dict[str, Any]:
    """Nested lookup document, unset fields included as null."""
    key: Dict[str, Any] = {}
    for path, value in lookup.items():
        _nest(path, value, key)
    return key


class GeometryStore:
    """Content addressed geostore table."""

    def __init__(self, database=db):
        self.db = database

    async def _first(self, sql):
        return await self.db.first(sql)

    async def _all(self, sql):
        return await self.db.all(sql)

    async def _write_first(self, sql):
        # Cache misses on GET requests write too, always use the write pool
        engine = await ContextEngine.get_engine("WRITE")
        return await engine.first(sql)

    async def _write_status(self, sql):
        engine = await ContextEngine.get_engine("WRITE")
        return await engine.status(sql)

    async def find_by_hash(self, geostore_hash: str) -> Optional[GeostoreRecord]:
        sql: Select = ORMGeostore.query.where(ORMGeostore.hash == geostore_hash)
        row = await self._first(sql)
        return GeostoreRecord.from_orm(row) if row is not None else None

    async def find_by_hashes(self, hashes: List[str]) -> List[GeostoreRecord]:
        if not hashes:
            return []
        sql: Select = ORMGeostore.query.where(ORMGeostore.hash.in_(hashes))
        rows = await self._all(sql)
        return [GeostoreRecord.from_orm(row) for row in rows]

    async def find_by_descriptor(
        self, lookup: Dict[LookupPath, Any]
    ) -> Optional[GeostoreRecord]:
        """Oldest record stored for this descriptor, or indexed under it."""
        indexed = db.select([DESCRIPTOR_TABLE.c.hash]).where(
            DESCRIPTOR_TABLE.c.descriptor == descriptor_key(lookup)
        )
        sql: Select = (
            ORMGeostore.query.where(
                or_(descriptor_clause(lookup), ORMGeostore.hash.in_(indexed))
            )
            .order_by(ORMGeostore.created_on)
            .limit(1)
        )
        row = await self._first(sql)
        return GeostoreRecord.from_orm(row) if row is not None else None

    async def add_descriptor(
        self, lookup: Dict[LookupPath, Any], geostore_hash: str
    ) -> None:
        """Index a descriptor under a record whose info belongs to another
        descriptor."""
        key = descriptor_key(lookup)
        sql = (
            insert(DESCRIPTOR_TABLE)
            .values(descriptor=key, hash=geostore_hash)
            .on_conflict_do_nothing(index_elements=[DESCRIPTOR_TABLE.c.descriptor])
        )
        await self._write_status(sql)
        logger.info(f"Indexed descriptor {key} to {geostore_hash}")

    async def list_national(self) -> List[Tuple[str, str]]:
        """Hash and country code of every stored country geometry."""
        iso = ORMGeostore.info["iso"].astext
        sql: Select = (
            db.select([ORMGeostore.hash, iso.label("iso")])
            .where(and_(iso.isnot(None), ORMGeostore.info["id1"].astext.is_(None)))
            .order_by(iso, ORMGeostore.created_on)
        )
        rows = await self._all(sql)
        return [(row.hash, row.iso) for row in rows]

    async def upsert(self, record: GeostoreRecord) -> GeostoreRecord:
        """Insert a record unless its hash exists already.

        An existing record is returned unchanged, so a lock request on an
        unlocked geometry is dropped. A locked one cannot be written again.
        """
        sql = (
            insert(GEOSTORE_TABLE)
            .values(**record.dict())
            .on_conflict_do_nothing(index_elements=[GEOSTORE_TABLE.c.hash])
            .returning(*GEOSTORE_TABLE.columns)
        )
        row = await self._write_first(sql)
        if row is not None:
            logger.info(f"Created geostore {record.hash}")
            return GeostoreRecord.from_orm(row)

        existing = await self._write_first(
            GEOSTORE_TABLE.select().where(GEOSTORE_TABLE.c.hash == record.hash)
        )
        existing_record = GeostoreRecord.from_orm(existing)
        if existing_record.lock:
            raise ImmutableRecordError(record.hash)

        if record.lock:
            logger.info(
                f"Geostore {record.hash} already exists unlocked, lock request ignored"
            )
        else:
            logger.info(f"Geostore {record.hash} already exists")
        return existing_record

    async def backfill(
        self,
        geostore_hash: str,
        area_ha: Optional[float] = None,
        bbox: Optional[List[float]] = None,
    ) -> None:
        """Set area and bbox where they are still missing.

        Locked records are never written.
        """
        unlocked = and_(
            GEOSTORE_TABLE.c.hash == geostore_hash, GEOSTORE_TABLE.c.lock == false()
        )
        if area_ha is not None:
            await self._write_status(
                GEOSTORE_TABLE.update()
                .where(and_(unlocked, GEOSTORE_TABLE.c.area_ha.is_(None)))
                .values(area_ha=area_ha)
            )
        if bbox is not None:
            await self._write_status(
                GEOSTORE_TABLE.update()
                .where(and_(unlocked, GEOSTORE_TABLE.c.bbox.is_(None)))
                .values(bbox=bbox)
            )
