"""Retrieve and create geostores.

Geostores are identified by the md5 hash of their canonical GeoJSON.
Admin boundaries, land use features and protected areas are fetched from
CARTO the first time they are requested and served from the database
afterwards.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import ORJSONResponse

from ...errors import (
    BadRequestError,
    GeometryTooLargeError,
    RecordNotFoundError,
    UpstreamQueryError,
)
from ...models.enum.geostore import GeostoreFormat
from ...models.pydantic.geostore import (
    AdminListItem,
    AdminListResponse,
    AreaAttributes,
    AreaData,
    AreaResponse,
    FindByIdsIn,
    GeostoreAttributes,
    GeostoreData,
    GeostoreIn,
    GeostoreListResponse,
    GeostoreRecord,
    GeostoreResponse,
    ViewResponse,
)
from ...utils.descriptor import parse_simplify
from ...utils.esri import geojson_to_esri
from ...utils.geostore import GeostoreService, geostore_attributes
from .. import GEOSTORE_ID_REGEX, geostore_service_dependency

router = APIRouter()


def _geostore_data(record: GeostoreRecord, esri: bool = False) -> GeostoreData:
    esrijson = geojson_to_esri(record.geojson) if esri else None
    return GeostoreData(
        type="geoStore",
        id=record.hash,
        attributes=GeostoreAttributes(**geostore_attributes(record, esrijson)),
    )


@router.post(
    "/",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def add_new_geostore(
    *,
    request: GeostoreIn,
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Create a geostore from GeoJSON, Esri JSON or a CARTO table.

    Submitting the same geometry again returns the existing geostore
    unchanged. A lock request on an already stored, unlocked geometry is
    ignored, and resubmitting a locked geometry is a conflict (409).
    """
    try:
        record = await service.save_geostore(
            geojson=request.geojson,
            esrijson=request.esrijson,
            provider=request.provider,
            lock=request.lock,
        )
    except (BadRequestError, UpstreamQueryError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(data=_geostore_data(record))


@router.post(
    "/find-by-ids",
    response_class=ORJSONResponse,
    response_model=GeostoreListResponse,
    tags=["Geostore"],
)
async def find_by_ids(
    *,
    request: FindByIdsIn,
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Retrieve several geostores at once."""
    try:
        records, info = await service.get_geostores_by_ids(request.geostores)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreListResponse(
        data=[_geostore_data(record) for record in records], info=info
    )


@router.post(
    "/area",
    response_class=ORJSONResponse,
    response_model=AreaResponse,
    tags=["Geostore"],
)
async def calculate_area(
    *,
    request: GeostoreIn,
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Area in hectares and bounding box of a geometry, without storing
    it."""
    try:
        area = await service.calculate_area(
            geojson=request.geojson,
            esrijson=request.esrijson,
            provider=request.provider,
        )
    except (BadRequestError, UpstreamQueryError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return AreaResponse(
        data=AreaData(type="geomArea", attributes=AreaAttributes(**area))
    )


@router.get(
    "/admin/list",
    response_class=ORJSONResponse,
    response_model=AdminListResponse,
    tags=["Geostore"],
)
async def get_admin_list(
    *, service: GeostoreService = Depends(geostore_service_dependency)
):
    """Geostore IDs, names and country codes of all stored countries."""
    countries = await service.get_national_list()
    return AdminListResponse(data=[AdminListItem(**country) for country in countries])


@router.get(
    "/admin/{iso}",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def get_national(
    *,
    iso: str = Path(..., title="ISO 3166-1 alpha-3 country code"),
    simplify: Optional[str] = Query(None, description="Simplify tolerance"),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Country boundary (GADM 3.6)."""
    try:
        record = await service.get_national(iso, parse_simplify(simplify))
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(data=_geostore_data(record))


@router.get(
    "/admin/{iso}/{id1}",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def get_subnational(
    *,
    iso: str = Path(..., title="ISO 3166-1 alpha-3 country code"),
    id1: str = Path(..., title="Region ID"),
    simplify: Optional[str] = Query(None, description="Simplify tolerance"),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Region boundary (GADM 3.6 level 1)."""
    try:
        record = await service.get_subnational(iso, id1, parse_simplify(simplify))
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(data=_geostore_data(record))


@router.get(
    "/admin/{iso}/{id1}/{id2}",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def get_regional(
    *,
    iso: str = Path(..., title="ISO 3166-1 alpha-3 country code"),
    id1: str = Path(..., title="Region ID"),
    id2: str = Path(..., title="District ID"),
    simplify: Optional[str] = Query(None, description="Simplify tolerance"),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """District boundary (GADM 3.6 level 2)."""
    try:
        record = await service.get_regional(iso, id1, id2, parse_simplify(simplify))
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(data=_geostore_data(record))


@router.get(
    "/use/{name}/{feature_id}",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def get_use(
    *,
    name: str = Path(..., title="Land use type or CARTO table"),
    feature_id: str = Path(..., title="cartodb_id of the feature"),
    simplify: Optional[str] = Query(None, description="Simplify large features"),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Land use feature, such as a mining or logging concession."""
    try:
        record = await service.get_use(name, feature_id, parse_simplify(simplify))
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (RecordNotFoundError, UpstreamQueryError) as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(data=_geostore_data(record))


@router.get(
    "/wdpa/{wdpaid}",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def get_wdpa(
    *,
    wdpaid: str = Path(..., title="WDPA ID"),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Terrestrial protected area."""
    try:
        record = await service.get_wdpa(wdpaid)
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(data=_geostore_data(record))


@router.get(
    "/{geostore_id}",
    response_class=ORJSONResponse,
    response_model=GeostoreResponse,
    tags=["Geostore"],
)
async def get_geostore(
    *,
    geostore_id: str = Path(..., title="geostore_id", regex=GEOSTORE_ID_REGEX),
    format_: Optional[GeostoreFormat] = Query(
        None, alias="format", description="Add Esri JSON"
    ),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Retrieve a geostore by hash or legacy ID."""
    try:
        record = await service.get_geostore_by_id(geostore_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GeostoreResponse(
        data=_geostore_data(record, esri=format_ == GeostoreFormat.esri)
    )


@router.get(
    "/{geostore_id}/view",
    response_class=ORJSONResponse,
    response_model=ViewResponse,
    tags=["Geostore"],
)
async def view_geostore(
    *,
    geostore_id: str = Path(..., title="geostore_id", regex=GEOSTORE_ID_REGEX),
    service: GeostoreService = Depends(geostore_service_dependency),
):
    """Link to the geostore on geojson.io."""
    try:
        link = await service.view_link(geostore_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GeometryTooLargeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ViewResponse(view_link=link)
