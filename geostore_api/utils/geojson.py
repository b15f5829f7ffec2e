"""Canonical form of stored geometries and its content hash.

Every geometry is stored as a FeatureCollection with exactly one Feature.
The hash is the MD5 hex digest of that collection serialized with sorted
keys and no whitespace. Stored hashes are public identifiers, so the
serialization must never change.
"""
import hashlib
import json
from typing import Any, Dict, List, Optional

from fastapi.logger import logger
from shapely.geometry import shape

from ..errors import BadRequestError, UnknownGeometryError
from ..models.enum.geostore import GeometryFamily

GEOMETRY_FAMILIES: Dict[str, GeometryFamily] = {
    "Point": GeometryFamily.point,
    "MultiPoint": GeometryFamily.point,
    "LineString": GeometryFamily.line,
    "MultiLineString": GeometryFamily.line,
    "Polygon": GeometryFamily.polygon,
    "MultiPolygon": GeometryFamily.polygon,
}

MULTI_GEOMETRY_TYPES: Dict[GeometryFamily, str] = {
    GeometryFamily.point: "MultiPoint",
    GeometryFamily.line: "MultiLineString",
    GeometryFamily.polygon: "MultiPolygon",
}


def get_geometry_family(geometry: Dict[str, Any]) -> GeometryFamily:
    geometry_type = geometry.get("type")
    logger.debug(f"Geometry type: {geometry_type}")
    try:
        return GEOMETRY_FAMILIES[geometry_type]
    except KeyError:
        raise UnknownGeometryError(f"Unknown geometry type: {geometry_type}")


def extract_geometry(geojson: Dict[str, Any]) -> Dict[str, Any]:
    """Return the single geometry described by a FeatureCollection, Feature
    or bare geometry.

    Features of a multi-feature collection are merged into one Multi*
    geometry if they all belong to the same geometry family.
    """
    geojson_type = geojson.get("type")

    if geojson_type == "FeatureCollection":
        features = geojson.get("features") or []
        geometries = [feature.get("geometry") for feature in features]
        if not geometries or any(geometry is None for geometry in geometries):
            raise BadRequestError("FeatureCollection has no geometry")
        if len(geometries) == 1:
            return geometries[0]
        return _merge_geometries(geometries)

    if geojson_type == "Feature":
        geometry = geojson.get("geometry")
        if geometry is None:
            raise BadRequestError("Feature has no geometry")
        return geometry

    return geojson


def _merge_geometries(geometries: List[Dict[str, Any]]) -> Dict[str, Any]:
    families = {get_geometry_family(geometry) for geometry in geometries}
    if len(families) > 1:
        raise UnknownGeometryError(
            "Cannot merge features of different geometry types: "
            f"{sorted({geometry['type'] for geometry in geometries})}"
        )
    family = families.pop()
    multi_type = MULTI_GEOMETRY_TYPES[family]

    coordinates: List[Any] = []
    for geometry in geometries:
        if geometry["type"] == multi_type:
            coordinates.extend(geometry["coordinates"])
        else:
            coordinates.append(geometry["coordinates"])

    return {"type": multi_type, "coordinates": coordinates}


def extract_properties(geojson: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Properties that survive canonicalization.

    Only the first feature of a FeatureCollection keeps its properties,
    bare geometries have none.
    """
    geojson_type = geojson.get("type")
    if geojson_type == "FeatureCollection":
        logger.info("Preserving FeatureCollection properties.")
        features = geojson.get("features") or [{}]
        return features[0].get("properties")
    elif geojson_type == "Feature":
        logger.info("Preserving Feature properties.")
        return geojson.get("properties")
    return None


def make_feature_collection(
    geometry: Dict[str, Any], properties: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": properties, "geometry": geometry}
        ],
    }


def serialize(feature_collection: Dict[str, Any]) -> bytes:
    return json.dumps(
        feature_collection, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def geojson_hash(feature_collection: Dict[str, Any]) -> str:
    return hashlib.md5(serialize(feature_collection)).hexdigest()


def compute_bbox(feature_collection: Dict[str, Any]) -> List[float]:
    bounds = [
        shape(feature["geometry"]).bounds
        for feature in feature_collection.get("features", [])
        if feature.get("geometry")
    ]
    if not bounds:
        raise BadRequestError("Cannot compute bounding box of an empty geometry")

    return [
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    ]
