"""Conversion between Esri JSON and GeoJSON.

Esri polygons are a flat list of rings: clockwise rings are shells and
counter-clockwise rings are holes. GeoJSON (RFC 7946) uses the opposite
winding.
"""
from typing import Any, Dict, List, Sequence

from shapely.geometry import LinearRing
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.polygon import orient

from ..errors import BadRequestError, UnknownGeometryError

WGS84_SPATIAL_REFERENCE = {"wkid": 4326}

Ring = List[List[float]]


def esri_to_geojson(esrijson: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an Esri feature set, feature or geometry to GeoJSON."""
    if "features" in esrijson:
        return {
            "type": "FeatureCollection",
            "features": [esri_to_geojson(feature) for feature in esrijson["features"]],
        }

    if "geometry" in esrijson or "attributes" in esrijson:
        geometry = esrijson.get("geometry")
        return {
            "type": "Feature",
            "properties": esrijson.get("attributes"),
            "geometry": esri_geometry_to_geojson(geometry) if geometry else None,
        }

    return esri_geometry_to_geojson(esrijson)


def esri_geometry_to_geojson(geometry: Dict[str, Any]) -> Dict[str, Any]:
    if "x" in geometry and "y" in geometry:
        coordinates = [geometry["x"], geometry["y"]]
        if geometry.get("z") is not None:
            coordinates.append(geometry["z"])
        return {"type": "Point", "coordinates": coordinates}

    if "points" in geometry:
        return {"type": "MultiPoint", "coordinates": geometry["points"]}

    if "paths" in geometry:
        paths = geometry["paths"]
        if len(paths) == 1:
            return {"type": "LineString", "coordinates": paths[0]}
        return {"type": "MultiLineString", "coordinates": paths}

    if "rings" in geometry:
        return _rings_to_geojson(geometry["rings"])

    raise UnknownGeometryError("Unknown Esri geometry")


def _close_ring(ring: Sequence[Sequence[float]]) -> Ring:
    closed = [list(position) for position in ring]
    if closed and closed[0] != closed[-1]:
        closed.append(list(closed[0]))
    return closed


def _rings_to_geojson(rings: Sequence[Sequence[Sequence[float]]]) -> Dict[str, Any]:
    polygons: List[List[Ring]] = []
    holes: List[Ring] = []

    for ring in rings:
        closed = _close_ring(ring)
        if len(closed) < 4:
            continue
        if LinearRing(closed).is_ccw:
            holes.append(closed[::-1])
        else:
            polygons.append([closed[::-1]])

    for hole in holes:
        hole_polygon = ShapelyPolygon(hole)
        for polygon in polygons:
            if ShapelyPolygon(polygon[0]).contains(hole_polygon):
                polygon.append(hole)
                break
        else:
            # A hole outside of every shell is a shell with the wrong winding
            polygons.append([hole[::-1]])

    if not polygons:
        raise BadRequestError("Esri polygon has no valid rings")
    if len(polygons) == 1:
        return {"type": "Polygon", "coordinates": polygons[0]}
    return {"type": "MultiPolygon", "coordinates": polygons}


def _esri_rings(polygon_coordinates: Sequence[Sequence[Sequence[float]]]) -> List[Ring]:
    shell, *holes = polygon_coordinates
    oriented = orient(ShapelyPolygon(shell, holes), sign=-1.0)
    rings = [oriented.exterior] + list(oriented.interiors)
    return [[list(position) for position in ring.coords] for ring in rings]


def geojson_to_esri(geojson: Dict[str, Any]) -> Dict[str, Any]:
    """Esri geometry of the first feature of a FeatureCollection (or of a
    Feature or bare geometry)."""
    if geojson.get("type") == "FeatureCollection":
        geojson = geojson["features"][0]
    if geojson.get("type") == "Feature":
        geojson = geojson["geometry"]

    geometry_type = geojson.get("type")
    coordinates = geojson.get("coordinates")

    if geometry_type == "Point":
        esri: Dict[str, Any] = {"x": coordinates[0], "y": coordinates[1]}
        if len(coordinates) > 2:
            esri["z"] = coordinates[2]
    elif geometry_type == "MultiPoint":
        esri = {"points": coordinates}
    elif geometry_type == "LineString":
        esri = {"paths": [coordinates]}
    elif geometry_type == "MultiLineString":
        esri = {"paths": coordinates}
    elif geometry_type == "Polygon":
        esri = {"rings": _esri_rings(coordinates)}
    elif geometry_type == "MultiPolygon":
        esri = {
            "rings": [
                ring for polygon in coordinates for ring in _esri_rings(polygon)
            ]
        }
    else:
        raise UnknownGeometryError(f"Unknown geometry type: {geometry_type}")

    esri["spatialReference"] = dict(WGS84_SPATIAL_REFERENCE)
    return esri
