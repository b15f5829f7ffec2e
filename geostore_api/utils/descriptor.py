"""Turn request path and query parameters into normalized descriptors.

Descriptors are the secondary, human readable lookup key of a geostore.
"""
import json
import re
from typing import Optional, Union

from ..errors import BadRequestError
from ..models.enum.geostore import LandUseType, LandUseTypeUseString
from ..models.pydantic.geostore import AdminDescriptor, UseDescriptor, WDPADescriptor
from ..settings.globals import GADM_VERSION

BIG_COUNTRIES = ("USA", "RUS", "CAN", "CHN", "BRA", "IDN")
BIG_COUNTRY_THRESHOLD = 0.1
DEFAULT_THRESHOLD = 0.005
THRESHOLD_PRECISION = 10

ISO_REGEX = re.compile(r"^[A-Za-z]{3}$")
IDENTIFIER_REGEX = re.compile(r"^[a-z_][a-z0-9_]*$")

SimplifyFlag = Union[None, bool, float]


def parse_simplify(raw: Optional[str]) -> SimplifyFlag:
    """Parse the `simplify` query parameter.

    Accepts JSON booleans and numbers (case insensitive), everything
    else is a bad request.
    """
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw.lower())
    except ValueError:
        raise BadRequestError(
            f"Bad syntax for simplify: {raw}. Must be a boolean or a number."
        )
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    raise BadRequestError(
        f"Bad syntax for simplify: {raw}. Must be a boolean or a number."
    )


def normalize_threshold(threshold: float) -> float:
    return round(threshold, THRESHOLD_PRECISION)


def default_simplify_threshold(
    iso: str, id1: Optional[int] = None, id2: Optional[int] = None
) -> float:
    """Coarser shapes tolerate more simplification for the same visual
    error."""
    base = BIG_COUNTRY_THRESHOLD if iso.upper() in BIG_COUNTRIES else DEFAULT_THRESHOLD
    if id1 is None and id2 is None:
        threshold = base
    elif id2 is None:
        threshold = base / 10
    else:
        threshold = base / 100
    return normalize_threshold(threshold)


def parse_iso(iso: str) -> str:
    if not ISO_REGEX.match(iso):
        raise BadRequestError(f"Invalid country code: {iso}")
    return iso.upper()


def parse_id(value: Union[str, int], name: str = "id") -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid {name}: {value}. Must be an integer.")
    if parsed < 0:
        raise BadRequestError(f"Invalid {name}: {value}. Must not be negative.")
    return parsed


def admin_descriptor(
    iso: str,
    id1: Optional[Union[str, int]] = None,
    id2: Optional[Union[str, int]] = None,
    simplify: SimplifyFlag = None,
    gadm: str = GADM_VERSION,
) -> AdminDescriptor:
    if id2 is not None and id1 is None:
        raise BadRequestError("id1 is required when id2 is specified")

    country = parse_iso(iso)
    region = parse_id(id1, "id1") if id1 is not None else None
    district = parse_id(id2, "id2") if id2 is not None else None

    if simplify is None or isinstance(simplify, bool):
        threshold = default_simplify_threshold(country, region, district)
    elif 0 < simplify <= 1 and normalize_threshold(simplify) > 0:
        threshold = normalize_threshold(simplify)
    else:
        # Also rejects thresholds too small to survive rounding
        raise BadRequestError("Bad threshold for simplify. Must be in range 0-1.")

    return AdminDescriptor(
        iso=country, id1=region, id2=district, simplify_thresh=threshold, gadm=gadm
    )


def use_table_name(name: str) -> str:
    """Upstream table holding the features of a land use layer."""
    try:
        return LandUseTypeUseString[LandUseType(name).name].value
    except ValueError:
        pass
    if not IDENTIFIER_REGEX.match(name):
        raise BadRequestError(f"Invalid use name: {name}")
    return name


def use_descriptor(
    name: str, feature_id: Union[str, int], simplify: SimplifyFlag = None
) -> UseDescriptor:
    return UseDescriptor(
        use_table=use_table_name(name),
        id=parse_id(feature_id),
        simplify=bool(simplify),
    )


def wdpa_descriptor(wdpaid: Union[str, int]) -> WDPADescriptor:
    return WDPADescriptor(wdpaid=parse_id(wdpaid, "wdpaid"))
