from typing import Any, Dict, List, Literal, Optional

from pydantic import validator

from .base import StrictBaseModel
from .geostore import GEOJSON_TYPES
from .responses import Response


class CoverageIntersectIn(StrictBaseModel):
    geojson: Dict[str, Any]
    slugs: Optional[List[str]]

    @validator("geojson")
    def check_geojson_type(cls, v):
        if v.get("type") not in GEOJSON_TYPES:
            raise ValueError(f"Invalid GeoJSON type: {v.get('type')}")
        return v


class CoverageAttributes(StrictBaseModel):
    layers: List[str]


class CoverageData(StrictBaseModel):
    type: Literal["coverages"]
    attributes: CoverageAttributes


class CoverageResponse(Response):
    data: CoverageData
