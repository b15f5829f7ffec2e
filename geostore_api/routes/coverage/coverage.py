"""Find the coverage layers that intersect an area."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import ORJSONResponse

from ...errors import BadRequestError, RecordNotFoundError
from ...models.pydantic.coverage import (
    CoverageAttributes,
    CoverageData,
    CoverageIntersectIn,
    CoverageResponse,
)
from ...utils.coverage import CoverageIntersector
from .. import GEOSTORE_ID_REGEX, coverage_dependency

router = APIRouter()


def _coverage_response(layers: List[str]) -> CoverageResponse:
    return CoverageResponse(
        data=CoverageData(type="coverages", attributes=CoverageAttributes(layers=layers))
    )


def _split_slugs(slugs: Optional[str]) -> Optional[List[str]]:
    if not slugs:
        return None
    return [slug.strip() for slug in slugs.split(",") if slug.strip()]


@router.get(
    "/intersect",
    response_class=ORJSONResponse,
    response_model=CoverageResponse,
    tags=["Coverage"],
)
async def intersect_geostore(
    *,
    geostore: str = Query(..., description="Geostore ID", regex=GEOSTORE_ID_REGEX),
    slugs: Optional[str] = Query(None, description="Comma separated layer slugs"),
    coverage: CoverageIntersector = Depends(coverage_dependency),
):
    """Layers intersecting a stored geostore."""
    try:
        layers = await coverage.by_geostore(geostore, _split_slugs(slugs))
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return _coverage_response(layers)


@router.post(
    "/intersect",
    response_class=ORJSONResponse,
    response_model=CoverageResponse,
    tags=["Coverage"],
)
async def intersect_geojson(
    *,
    request: CoverageIntersectIn,
    coverage: CoverageIntersector = Depends(coverage_dependency),
):
    """Layers intersecting a GeoJSON geometry."""
    try:
        layers = await coverage.world(request.geojson, request.slugs)
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _coverage_response(layers)


@router.get(
    "/intersect/admin/{iso}",
    response_class=ORJSONResponse,
    response_model=CoverageResponse,
    tags=["Coverage"],
)
async def intersect_national(
    *,
    iso: str = Path(..., title="ISO 3166-1 alpha-3 country code"),
    coverage: CoverageIntersector = Depends(coverage_dependency),
):
    try:
        layers = await coverage.national(iso)
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _coverage_response(layers)


@router.get(
    "/intersect/admin/{iso}/{id1}",
    response_class=ORJSONResponse,
    response_model=CoverageResponse,
    tags=["Coverage"],
)
async def intersect_subnational(
    *,
    iso: str = Path(..., title="ISO 3166-1 alpha-3 country code"),
    id1: str = Path(..., title="Region ID"),
    coverage: CoverageIntersector = Depends(coverage_dependency),
):
    try:
        layers = await coverage.subnational(iso, id1)
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _coverage_response(layers)


@router.get(
    "/intersect/use/{name}/{feature_id}",
    response_class=ORJSONResponse,
    response_model=CoverageResponse,
    tags=["Coverage"],
)
async def intersect_use(
    *,
    name: str = Path(..., title="Land use type or CARTO table"),
    feature_id: str = Path(..., title="cartodb_id of the feature"),
    coverage: CoverageIntersector = Depends(coverage_dependency),
):
    try:
        layers = await coverage.use(name, feature_id)
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _coverage_response(layers)


@router.get(
    "/intersect/wdpa/{wdpaid}",
    response_class=ORJSONResponse,
    response_model=CoverageResponse,
    tags=["Coverage"],
)
async def intersect_wdpa(
    *,
    wdpaid: str = Path(..., title="WDPA ID"),
    coverage: CoverageIntersector = Depends(coverage_dependency),
):
    try:
        layers = await coverage.wdpa(wdpaid)
    except BadRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return _coverage_response(layers)
