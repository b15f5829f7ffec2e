from enum import Enum, IntEnum


class GeometryFamily(IntEnum):
    """Geometry families, numbered as ST_CollectionExtract expects them."""

    point = 1
    line = 2
    polygon = 3


class ProviderType(str, Enum):
    carto = "carto"


class LandUseType(str, Enum):
    fiber = "fiber"
    logging = "logging"
    mining = "mining"
    oilpalm = "oilpalm"
    tiger_conservation_landscapes = "tiger_conservation_landscapes"


class LandUseTypeUseString(str, Enum):
    fiber = "gfw_wood_fiber"
    logging = "gfw_logging"
    mining = "gfw_mining"
    oilpalm = "gfw_oil_palm"
    tiger_conservation_landscapes = "tcl"


class GeostoreFormat(str, Enum):
    geojson = "geojson"
    esri = "esri"
