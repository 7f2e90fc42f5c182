# backend/aeroconflict/services/geometry/normalize.py
"""
GeoJSON の正規化と投入時チェック。

- normalize: Feature / FeatureCollection / 生ジオメトリ → 単純ジオメトリの列
- validate_geojson: 投入 API 用の構造チェック（座標の妥当性までは見ない）
- as_feature_collection: Feature / ジオメトリを FeatureCollection に包む
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Optional

from shapely.geometry.base import BaseGeometry

from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry, default_geometry

logger = logging.getLogger(__name__)

GEOMETRY_TYPES = (
    "Point", "LineString", "Polygon",
    "MultiPoint", "MultiLineString", "MultiPolygon",
    "GeometryCollection",
)


class GeoJSONDecodeError(ValueError):
    """The top-level payload is not JSON at all."""


def load_geojson(payload: str | bytes | dict) -> Any:
    if isinstance(payload, (str, bytes)):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise GeoJSONDecodeError(f"payload is not valid JSON: {e}") from e
    return payload


def normalize(payload: str | bytes | dict, geometry: ShapelyGeometry = default_geometry) -> Iterator[BaseGeometry]:
    """
    Turn a GeoJSON payload into an ordered, lazy sequence of parsed geometries.

    Malformed features are skipped with a warning; only a payload that is not
    JSON raises (GeoJSONDecodeError), and it does so before iteration starts.
    """
    doc = load_geojson(payload)
    return _iter_geometries(doc, geometry)


def _iter_geometries(doc: Any, geometry: ShapelyGeometry) -> Iterator[BaseGeometry]:
    if not isinstance(doc, dict):
        logger.warning("GeoJSON payload is %s, not an object; nothing to normalize", type(doc).__name__)
        return

    gtype = doc.get("type")
    if gtype == "FeatureCollection":
        features = doc.get("features")
        if not isinstance(features, list):
            logger.warning("FeatureCollection has no features array")
            return
        for i, feature in enumerate(features):
            if not isinstance(feature, dict) or feature.get("geometry") is None:
                logger.warning("Feature %d missing geometry, skipping", i)
                continue
            g = _parse(feature["geometry"], geometry, f"feature {i}")
            if g is not None:
                yield g
    elif gtype == "Feature":
        if doc.get("geometry") is None:
            logger.warning("Feature has no geometry")
            return
        yield from _iter_geometries(doc["geometry"], geometry)
    else:
        g = _parse(doc, geometry, "geometry")
        if g is not None:
            yield g


def _parse(obj: Any, geometry: ShapelyGeometry, label: str) -> Optional[BaseGeometry]:
    try:
        g = geometry.parse(obj)
    except GeometryError as e:
        logger.warning("Failed to parse %s: %s", label, e)
        return None
    logger.debug("Parsed %s of type %s", label, g.geom_type)
    return g


def validate_geojson(obj: Any) -> Optional[str]:
    """戻り値: エラーメッセージ（妥当なら None）"""
    if not isinstance(obj, dict) or "type" not in obj:
        return "GeoJSON must have a 'type' field"

    t = obj["type"]
    if t == "Feature":
        if "geometry" not in obj:
            return "Feature must have a 'geometry' field"
        return _validate_geometry(obj["geometry"])
    if t == "FeatureCollection":
        features = obj.get("features")
        if not isinstance(features, list):
            return "FeatureCollection must have a 'features' field"
        for feature in features:
            err = validate_geojson(feature)
            if err:
                return err
        return None
    return _validate_geometry(obj)


def _validate_geometry(geom: Any) -> Optional[str]:
    if not isinstance(geom, dict) or "type" not in geom:
        return "Geometry must have a 'type' field"
    t = geom["type"]
    if t not in GEOMETRY_TYPES:
        return f"Invalid geometry type: {t}"
    if t == "GeometryCollection":
        parts = geom.get("geometries")
        if not isinstance(parts, list):
            return "GeometryCollection must have a 'geometries' field"
        for part in parts:
            err = _validate_geometry(part)
            if err:
                return err
        return None
    if "coordinates" not in geom:
        return "Geometry must have a 'coordinates' field"
    return None


def as_feature_collection(obj: dict) -> dict:
    t = obj.get("type")
    if t == "FeatureCollection":
        return obj
    if t == "Feature":
        return {"type": "FeatureCollection", "features": [obj]}
    return {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "geometry": obj, "properties": {}}],
    }
