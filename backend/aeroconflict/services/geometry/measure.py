# backend/aeroconflict/services/geometry/measure.py
from __future__ import annotations

from typing import Optional

from pyproj import Geod
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

# 面積は WGS84 楕円体上で計算（EPSG:4326 の度単位のままでは m² にならない）
_GEOD = Geod(ellps="WGS84")


def geodesic_area_m2(geojson: dict) -> Optional[float]:
    """交差形状の面積 [m²]。"{}" や空ジオメトリは None。点・線だけなら 0.0。"""
    if not geojson or "type" not in geojson:
        return None
    geom = shape(geojson)
    if geom.is_empty:
        return None
    return _area(geom)


def _area(geom: BaseGeometry) -> float:
    if hasattr(geom, "geoms"):
        return sum(_area(g) for g in geom.geoms)
    if geom.geom_type != "Polygon":
        return 0.0
    # 反時計回りに揃えると正の面積になる
    area, _perimeter = _GEOD.geometry_area_perimeter(orient(geom, sign=1.0))
    return area
