import json
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, root_validator, validator

from .base import BaseORMRecord, StrictBaseModel
from .responses import Response

GEOJSON_TYPES = (
    "FeatureCollection",
    "Feature",
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
    "GeometryCollection",
)

LookupPath = Tuple[str, ...]


class CartoProvider(StrictBaseModel):
    type: Literal["carto"]
    table: str
    user: str
    filter: str


# Add new provider models here, and a matching fetcher in
# UpstreamFetcher.provider_fetchers
Provider = CartoProvider


class GeostoreIn(BaseModel):
    geojson: Optional[Dict[str, Any]]
    esrijson: Optional[Dict[str, Any]]
    provider: Optional[Provider]
    lock: bool = False

    @validator("geojson")
    def check_geojson_type(cls, v):
        if v is not None and v.get("type") not in GEOJSON_TYPES:
            raise ValueError(f"Invalid GeoJSON type: {v.get('type')}")
        return v

    @root_validator(skip_on_failure=True)
    def check_geometry_source(cls, values):
        if not any(values.get(key) for key in ("geojson", "esrijson", "provider")):
            raise ValueError("geojson, esrijson or provider required")
        return values


class FindByIdsIn(StrictBaseModel):
    geostores: List[str]


class Adm0BoundaryInfo(StrictBaseModel):
    use: Dict
    simplifyThresh: Optional[float]
    gadm: str
    name: Optional[str]
    iso: str


class Adm1BoundaryInfo(Adm0BoundaryInfo):
    id1: int


class Adm2BoundaryInfo(Adm1BoundaryInfo):
    id2: int


class CreateGeostoreResponseInfo(StrictBaseModel):
    use: Dict


class WDPAInfo(StrictBaseModel):
    use: Dict
    wdpaid: int


class LandUseUse(StrictBaseModel):
    use: str
    id: int


class LandUseInfo(StrictBaseModel):
    use: LandUseUse
    simplify: bool


class AdminDescriptor(StrictBaseModel):
    """Country (id1 and id2 unset), region (id1 set) or district (both
    set)."""

    iso: str
    id1: Optional[int] = None
    id2: Optional[int] = None
    simplify_thresh: float
    gadm: str

    @property
    def adm_level(self) -> int:
        if self.id2 is not None:
            return 2
        if self.id1 is not None:
            return 1
        return 0

    def lookup(self) -> Dict[LookupPath, Any]:
        return {
            ("iso",): self.iso,
            ("id1",): self.id1,
            ("id2",): self.id2,
            ("gadm",): self.gadm,
            ("simplifyThresh",): self.simplify_thresh,
        }

    def info(self, name: Optional[str] = None) -> Dict[str, Any]:
        fields = {
            "use": {},
            "simplifyThresh": self.simplify_thresh,
            "gadm": self.gadm,
            "name": name,
            "iso": self.iso,
        }
        info: Adm0BoundaryInfo = Adm0BoundaryInfo(**fields)
        if self.adm_level >= 1:
            info = Adm1BoundaryInfo(**info.dict(), id1=self.id1)
        if self.adm_level == 2:
            info = Adm2BoundaryInfo(**info.dict(), id2=self.id2)
        return info.dict()


class UseDescriptor(StrictBaseModel):
    use_table: str
    id: int
    simplify: bool

    def lookup(self) -> Dict[LookupPath, Any]:
        return {
            ("use", "use"): self.use_table,
            ("use", "id"): self.id,
            ("simplify",): self.simplify,
        }

    def info(self, name: Optional[str] = None) -> Dict[str, Any]:
        return LandUseInfo(
            use=LandUseUse(use=self.use_table, id=self.id), simplify=self.simplify
        ).dict()


class WDPADescriptor(StrictBaseModel):
    wdpaid: int

    def lookup(self) -> Dict[LookupPath, Any]:
        return {("wdpaid",): self.wdpaid}

    def info(self, name: Optional[str] = None) -> Dict[str, Any]:
        return WDPAInfo(use={}, wdpaid=self.wdpaid).dict()


Descriptor = Union[AdminDescriptor, UseDescriptor, WDPADescriptor]


class GeostoreRecord(BaseORMRecord):
    hash: str
    geojson: Dict[str, Any]
    area_ha: Optional[float]
    bbox: Optional[List[float]]
    info: Dict[str, Any] = {}
    provider: Dict[str, Any] = {}
    lock: bool = False

    @validator("geojson", "info", "provider", pre=True)
    def convert_to_dict(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        elif v is None:
            return {}
        else:
            return v

    @validator("bbox", pre=True)
    def convert_to_floats(cls, v):
        if v is None:
            return v
        return [float(val) for val in v]


class GeostoreAttributes(StrictBaseModel):
    geojson: Dict[str, Any]
    hash: str
    provider: Dict[str, Any]
    areaHa: Optional[float]
    bbox: Optional[List[float]]
    lock: bool
    info: Dict[str, Any]
    esrijson: Optional[Dict[str, Any]]


class GeostoreData(StrictBaseModel):
    type: Literal["geoStore"]
    id: str
    attributes: GeostoreAttributes


class GeostoreResponse(Response):
    data: GeostoreData


class FindByIdsInfo(StrictBaseModel):
    found: int
    foundIds: List[str]
    returned: int


class GeostoreListResponse(Response):
    data: List[GeostoreData]
    info: FindByIdsInfo


class AreaAttributes(StrictBaseModel):
    areaHa: float
    bbox: List[float]


class AreaData(StrictBaseModel):
    type: Literal["geomArea"]
    attributes: AreaAttributes


class AreaResponse(Response):
    data: AreaData


class AdminListItem(StrictBaseModel):
    geostoreId: str
    iso: str
    name: Optional[str]


class AdminListResponse(Response):
    data: List[AdminListItem]


class ViewResponse(StrictBaseModel):
    view_link: str
