from __future__ import annotations

from collections.abc import Iterable
from typing import Any

GEOMETRY_TYPES = {
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
}

# LKS-94 / Lithuania TM, used by the registry layers.
DEFAULT_SRID = 3346


class GeometryError(ValueError):
    pass


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(item, (int, float)) and not isinstance(item, bool) for item in value)
    )


def _coordinates_depth(value: Any) -> int:
    if _is_position(value):
        return 0
    if not isinstance(value, (list, tuple)) or not value:
        raise GeometryError("Invalid geometry coordinates")
    depths = {_coordinates_depth(item) for item in value}
    if len(depths) != 1:
        raise GeometryError("Invalid geometry coordinates")
    return depths.pop() + 1


_EXPECTED_DEPTH = {
    "Point": 0,
    "MultiPoint": 1,
    "LineString": 1,
    "MultiLineString": 2,
    "Polygon": 2,
    "MultiPolygon": 3,
}


def _validate_geometry(geometry: Any) -> dict[str, Any]:
    if not isinstance(geometry, dict):
        raise GeometryError("Invalid geometry")
    geometry_type = geometry.get("type")
    if geometry_type not in GEOMETRY_TYPES:
        raise GeometryError(f"Unsupported geometry type: {geometry_type}")
    coordinates = geometry.get("coordinates")
    if _coordinates_depth(coordinates) != _EXPECTED_DEPTH[geometry_type]:
        raise GeometryError(f"Invalid coordinates for {geometry_type}")
    return {"type": geometry_type, "coordinates": coordinates}


def _features_of(raw: dict[str, Any]) -> list[dict[str, Any]]:
    raw_type = raw.get("type")
    if raw_type == "FeatureCollection":
        features = raw.get("features")
        if not isinstance(features, list):
            raise GeometryError("Invalid feature collection")
        return features
    if raw_type == "Feature":
        return [raw]
    if raw_type in GEOMETRY_TYPES:
        return [{"type": "Feature", "geometry": raw, "properties": {}}]
    raise GeometryError("Invalid geometry")


def normalize_geometry(raw: Any, *, srid: int = DEFAULT_SRID) -> dict[str, Any]:
    """Turn a GeoJSON geometry, feature or collection into a validated FeatureCollection.

    Raises :class:`GeometryError` when nothing usable was passed.
    """
    if raw is None or raw == {} or raw == "":
        raise GeometryError("No geometry was passed")
    if not isinstance(raw, dict):
        raise GeometryError("Invalid geometry")

    features: list[dict[str, Any]] = []
    for feature in _features_of(raw):
        if not isinstance(feature, dict):
            raise GeometryError("Invalid feature")
        properties = feature.get("properties")
        features.append(
            {
                "type": "Feature",
                "geometry": _validate_geometry(feature.get("geometry")),
                "properties": properties if isinstance(properties, dict) else {},
            }
        )
    if not features:
        raise GeometryError("No geometry was passed")

    return {
        "type": "FeatureCollection",
        "crs": {"type": "name", "properties": {"name": f"EPSG:{srid}"}},
        "features": features,
    }


def first_geometry(collection: dict[str, Any] | None) -> dict[str, Any] | None:
    if not collection:
        return None
    features = collection.get("features") or []
    if not features:
        return None
    return features[0].get("geometry")


def to_feature_collection(rows: Iterable[tuple[int, dict[str, Any] | None]], *, srid: int = DEFAULT_SRID) -> dict[str, Any]:
    """Merge stored collections of ``(id, geom)`` rows into one FeatureCollection."""
    features: list[dict[str, Any]] = []
    for row_id, geom in rows:
        for feature in (geom or {}).get("features") or []:
            properties = dict(feature.get("properties") or {})
            properties["id"] = row_id
            features.append({"type": "Feature", "geometry": feature.get("geometry"), "properties": properties})
    return {
        "type": "FeatureCollection",
        "crs": {"type": "name", "properties": {"name": f"EPSG:{srid}"}},
        "features": features,
    }
