# backend/aeroconflict/services/geometry/capability.py
from __future__ import annotations

from typing import Iterable

from shapely.errors import ShapelyError
from shapely.geometry import GeometryCollection, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union


class GeometryError(Exception):
    """Raised when the geometry library cannot complete an operation."""


class ShapelyGeometry:
    """
    解析エンジンが使う幾何演算の窓口（shapely 実装）。
    - parse / is_valid / buffer_zero / intersects / intersection / collect / merge / export
    - ライブラリ側の例外は GeometryError に揃えて送出する
    テストでは失敗系を差し込むためにサブクラスで差し替える。
    """

    def parse(self, obj: dict) -> BaseGeometry:
        if not isinstance(obj, dict):
            raise GeometryError(f"geometry must be an object, got {type(obj).__name__}")
        try:
            return shape(obj)
        except (ShapelyError, ValueError, TypeError, KeyError, IndexError, AttributeError) as e:
            raise GeometryError(f"cannot parse {obj.get('type')!r} geometry: {e}") from e

    def is_valid(self, g: BaseGeometry) -> bool:
        return bool(g.is_valid)

    def buffer_zero(self, g: BaseGeometry) -> BaseGeometry:
        try:
            return g.buffer(0)
        except (ShapelyError, ValueError) as e:
            raise GeometryError(f"buffer(0) failed: {e}") from e

    def intersects(self, a: BaseGeometry, b: BaseGeometry) -> bool:
        try:
            return bool(a.intersects(b))
        except (ShapelyError, ValueError) as e:
            raise GeometryError(f"intersects failed: {e}") from e

    def intersection(self, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry:
        try:
            return a.intersection(b)
        except (ShapelyError, ValueError) as e:
            raise GeometryError(f"intersection failed: {e}") from e

    def collect(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        return GeometryCollection(list(geoms))

    def merge(self, geoms: Iterable[BaseGeometry]) -> BaseGeometry:
        try:
            return unary_union(list(geoms))
        except (ShapelyError, ValueError) as e:
            raise GeometryError(f"union failed: {e}") from e

    def export(self, g: BaseGeometry) -> dict:
        try:
            return mapping(g)
        except (ShapelyError, ValueError, TypeError) as e:
            raise GeometryError(f"export failed: {e}") from e


default_geometry = ShapelyGeometry()
