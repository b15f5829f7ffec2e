"""Fetch-on-miss coordination between the geostore table and CARTO.

Descriptor lookups hit the table first and only go upstream on a miss.
Whatever comes back is repaired, canonicalized, hashed and inserted with
a conditional insert, so concurrent misses converge on one record.
"""
import copy
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from fastapi.logger import logger

from ..crud.aliases import AliasTable
from ..crud.geostore import GeometryStore
from ..errors import BadRequestError, GeometryTooLargeError, RecordNotFoundError
from ..models.pydantic.geostore import (
    Descriptor,
    FindByIdsInfo,
    GeostoreRecord,
    Provider,
)
from ..settings.globals import GEOJSONIO_MAX_URL_LEN, MAX_GEOSTORES_FOUND_BY_ID
from .descriptor import SimplifyFlag, admin_descriptor, use_descriptor, wdpa_descriptor
from .esri import esri_to_geojson
from .geojson import (
    compute_bbox,
    extract_geometry,
    extract_properties,
    geojson_hash,
    get_geometry_family,
    make_feature_collection,
)
from .upstream import UpstreamFetcher, UpstreamRow

GEOJSONIO_URL = "http://geojson.io/#data=data:application/json,"


class GeostoreService:
    def __init__(
        self, store: GeometryStore, aliases: AliasTable, upstream: UpstreamFetcher
    ):
        self.store = store
        self.aliases = aliases
        self.upstream = upstream

    async def canonicalize(
        self, geojson: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], UpstreamRow]:
        """Repair a geometry and wrap it into a single feature collection.

        Returns the canonical collection and the repair row, which holds
        area and bbox of the repaired geometry.
        """
        geometry = extract_geometry(geojson)
        family = get_geometry_family(geometry)
        properties = extract_properties(geojson)

        repaired = await self.upstream.repair_geometry(geometry, family)
        if repaired is None:
            raise BadRequestError("No GeoJSON returned")

        return make_feature_collection(repaired["geojson"], properties), repaired

    async def _store_geometry(
        self,
        geojson: Dict[str, Any],
        info: Dict[str, Any],
        area_ha: Optional[float] = None,
        provider: Optional[Dict[str, Any]] = None,
        lock: bool = False,
    ) -> GeostoreRecord:
        feature_collection, repaired = await self.canonicalize(geojson)
        geostore_hash = geojson_hash(feature_collection)
        logger.debug(f"Canonical geometry hashes to {geostore_hash}")

        record = GeostoreRecord(
            hash=geostore_hash,
            geojson=feature_collection,
            area_ha=area_ha if area_ha is not None else repaired["area_ha"],
            bbox=repaired.get("bbox") or compute_bbox(feature_collection),
            info=info,
            provider=provider or {},
            lock=lock,
        )
        return await self.store.upsert(record)

    async def _get_by_descriptor(
        self,
        descriptor: Descriptor,
        fetch: Callable[[Any], Awaitable[Optional[UpstreamRow]]],
        not_found: str,
    ) -> GeostoreRecord:
        existing = await self.store.find_by_descriptor(descriptor.lookup())
        if existing is not None:
            logger.info(f"Found stored geostore {existing.hash} for {descriptor}")
            return existing

        logger.info(f"No stored geostore for {descriptor}, requesting upstream")
        row = await fetch(descriptor)
        if row is None or row["geojson"] is None:
            raise RecordNotFoundError(not_found)

        info = descriptor.info(row.get("name"))
        record = await self._store_geometry(
            row["geojson"], info=info, area_ha=row["area_ha"]
        )
        if record.info != info:
            # Same geometry as a record stored for another descriptor
            await self.store.add_descriptor(descriptor.lookup(), record.hash)
        return record

    async def find_geostore(self, geostore_id: str) -> GeostoreRecord:
        """Alias resolved read, without back-filling."""
        geostore_hash = await self.aliases.resolve(geostore_id)
        record = await self.store.find_by_hash(geostore_hash)
        if record is None:
            raise RecordNotFoundError(f"GeoStore {geostore_id} not found")
        return record

    async def get_geostore_by_id(self, geostore_id: str) -> GeostoreRecord:
        record = await self.find_geostore(geostore_id)
        return await self._backfill(record)

    async def _backfill(self, record: GeostoreRecord) -> GeostoreRecord:
        if record.bbox is not None and record.area_ha is not None:
            return record

        bbox = record.bbox
        if bbox is None:
            bbox = compute_bbox(record.geojson)

        area_ha = record.area_ha
        if area_ha is None:
            row = await self.upstream.area(extract_geometry(record.geojson))
            area_ha = row["area_ha"] if row is not None else None

        if record.lock:
            logger.info(f"Geostore {record.hash} is locked, not storing area or bbox")
        else:
            await self.store.backfill(record.hash, area_ha=area_ha, bbox=bbox)

        return record.copy(update={"bbox": bbox, "area_ha": area_ha})

    async def get_geostores_by_ids(
        self, geostore_ids: List[str]
    ) -> Tuple[List[GeostoreRecord], FindByIdsInfo]:
        ids: List[str] = list(dict.fromkeys(i.strip() for i in geostore_ids))
        if not ids:
            raise RecordNotFoundError("No GeoStores in payload")

        hashes = await self.aliases.resolve_many(ids)
        records = await self.store.find_by_hashes(list(dict.fromkeys(hashes)))
        if not records:
            raise RecordNotFoundError("No GeoStores found")

        returned = records[:MAX_GEOSTORES_FOUND_BY_ID]
        logger.info(f"Found {len(records)} matching geostores. Returning {len(returned)}.")
        info = FindByIdsInfo(
            found=len(records),
            foundIds=[record.hash for record in records],
            returned=len(returned),
        )
        return returned, info

    async def get_national(self, iso: str, simplify: SimplifyFlag = None) -> GeostoreRecord:
        descriptor = admin_descriptor(iso, simplify=simplify)
        return await self._get_by_descriptor(
            descriptor, self.upstream.fetch_admin, "Country not found"
        )

    async def get_subnational(
        self, iso: str, id1: str, simplify: SimplifyFlag = None
    ) -> GeostoreRecord:
        descriptor = admin_descriptor(iso, id1, simplify=simplify)
        return await self._get_by_descriptor(
            descriptor, self.upstream.fetch_admin, "Region not found"
        )

    async def get_regional(
        self, iso: str, id1: str, id2: str, simplify: SimplifyFlag = None
    ) -> GeostoreRecord:
        descriptor = admin_descriptor(iso, id1, id2, simplify=simplify)
        return await self._get_by_descriptor(
            descriptor, self.upstream.fetch_admin, "District not found"
        )

    async def get_use(
        self, name: str, feature_id: str, simplify: SimplifyFlag = None
    ) -> GeostoreRecord:
        descriptor = use_descriptor(name, feature_id, simplify)
        return await self._get_by_descriptor(
            descriptor, self.upstream.fetch_use, "Use not found"
        )

    async def get_wdpa(self, wdpaid: str) -> GeostoreRecord:
        descriptor = wdpa_descriptor(wdpaid)
        return await self._get_by_descriptor(
            descriptor,
            lambda d: self.upstream.fetch_wdpa(d.wdpaid),
            "Wdpa not found",
        )

    async def get_national_list(self) -> List[Dict[str, Any]]:
        countries = await self.store.list_national()
        names = await self.upstream.names_for([iso for _, iso in countries])
        return [
            {"geostoreId": geostore_hash, "iso": iso, "name": names.get(iso.upper())}
            for geostore_hash, iso in countries
        ]

    async def _resolve_input(
        self,
        geojson: Optional[Dict[str, Any]],
        esrijson: Optional[Dict[str, Any]],
        provider: Optional[Provider],
    ) -> Tuple[Dict[str, Any], Optional[float]]:
        if provider is not None:
            row = await self.upstream.fetch_provider(provider)
            if row is None or row["geojson"] is None:
                raise RecordNotFoundError("Geojson not found")
            return row["geojson"], row["area_ha"]
        if esrijson is not None:
            return esri_to_geojson(esrijson), None
        if geojson is not None:
            return geojson, None
        raise BadRequestError("geojson, esrijson or provider required")

    async def save_geostore(
        self,
        geojson: Optional[Dict[str, Any]] = None,
        esrijson: Optional[Dict[str, Any]] = None,
        provider: Optional[Provider] = None,
        info: Optional[Dict[str, Any]] = None,
        lock: bool = False,
    ) -> GeostoreRecord:
        source, area_ha = await self._resolve_input(geojson, esrijson, provider)
        return await self._store_geometry(
            source,
            info=info if info is not None else {"use": {}},
            area_ha=area_ha,
            provider=provider.dict() if provider is not None else None,
            lock=lock,
        )

    async def calculate_area(
        self,
        geojson: Optional[Dict[str, Any]] = None,
        esrijson: Optional[Dict[str, Any]] = None,
        provider: Optional[Provider] = None,
    ) -> Dict[str, Any]:
        source, area_ha = await self._resolve_input(geojson, esrijson, provider)
        geometry = extract_geometry(source)
        bbox = compute_bbox(make_feature_collection(geometry))

        if area_ha is None:
            row = await self.upstream.area(geometry)
            if row is None or row["area_ha"] is None:
                raise BadRequestError("Could not compute area of geometry")
            area_ha = row["area_ha"]

        return {"areaHa": area_ha, "bbox": bbox}

    async def view_link(self, geostore_id: str) -> str:
        record = await self.get_geostore_by_id(geostore_id)
        return geojsonio_link(record.geojson)


def geojsonio_link(feature_collection: Dict[str, Any]) -> str:
    first_geometry = feature_collection["features"][0]["geometry"]
    if first_geometry["type"] == "MultiPolygon":
        view: Dict[str, Any] = {
            "type": "MultiPolygon",
            "coordinates": first_geometry["coordinates"],
        }
    else:
        view = copy.deepcopy(feature_collection)
        for feature in view["features"]:
            feature["properties"] = None

    serialized = json.dumps(view, separators=(",", ":"))
    if len(serialized) > GEOJSONIO_MAX_URL_LEN:
        raise GeometryTooLargeError(
            "Geometry too large, please try again with a smaller geometry."
        )
    return GEOJSONIO_URL + quote(serialized, safe="!*'()")


def geostore_attributes(
    record: GeostoreRecord, esrijson: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Response attributes of a record. Older clients expect an empty
    `crs` member on the collection."""
    return {
        "geojson": {**record.geojson, "crs": {}},
        "hash": record.hash,
        "provider": record.provider,
        "areaHa": record.area_ha,
        "bbox": record.bbox,
        "lock": record.lock,
        "info": record.info,
        "esrijson": esrijson,
    }
