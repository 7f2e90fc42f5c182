# backend/aeroconflict/services/conflicts/intersect.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from shapely.geometry.base import BaseGeometry

from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry, default_geometry

logger = logging.getLogger(__name__)


@dataclass
class IntersectionResult:
    hit: bool = False
    intersections: list[BaseGeometry] = field(default_factory=list)
    hit_indices: list[int] = field(default_factory=list)


class IntersectionTester:
    """
    案件ジオメトリ群 × 保護区域1件 の交差判定。
    - 1ペアの判定失敗は「交差なし」扱いで続行
    - 交差形状の計算は best-effort（失敗しても交差そのものは残す）
    """

    def __init__(self, geometry: ShapelyGeometry = default_geometry):
        self.geometry = geometry

    def test(self, project_geoms: Sequence[BaseGeometry], zone_geom: BaseGeometry, label: str = "zone") -> IntersectionResult:
        result = IntersectionResult()
        for i, pg in enumerate(project_geoms):
            try:
                hit = self.geometry.intersects(pg, zone_geom)
            except GeometryError as e:
                logger.error("Intersection check failed between project geometry %d and %s: %s", i, label, e)
                continue
            if not hit:
                continue

            result.hit = True
            result.hit_indices.append(i)
            logger.debug("Conflict found between project geometry %d and %s", i, label)

            try:
                shape_ = self.geometry.intersection(pg, zone_geom)
            except GeometryError as e:
                logger.warning("Could not compute intersection of project geometry %d with %s: %s", i, label, e)
                continue
            if shape_.is_empty:
                logger.debug("Intersection of project geometry %d with %s is empty", i, label)
                continue
            result.intersections.append(shape_)
        return result
