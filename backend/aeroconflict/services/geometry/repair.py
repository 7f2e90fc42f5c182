# backend/aeroconflict/services/geometry/repair.py
from __future__ import annotations

import logging
from typing import Iterable

from shapely.geometry.base import BaseGeometry

from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry, default_geometry

logger = logging.getLogger(__name__)


def repair(g: BaseGeometry, geometry: ShapelyGeometry = default_geometry) -> BaseGeometry:
    """
    不正なジオメトリを buffer(0) で修復する。
    修復できなければ元のジオメトリをそのまま返す（交差判定は続行できるため）。
    """
    if geometry.is_valid(g):
        return g

    try:
        fixed = geometry.buffer_zero(g)
    except GeometryError as e:
        logger.warning("Could not repair invalid %s, keeping original: %s", g.geom_type, e)
        return g

    if fixed.is_empty or not geometry.is_valid(fixed):
        logger.warning("buffer(0) did not yield a valid %s, keeping original", g.geom_type)
        return g

    logger.warning("Repaired invalid %s with buffer(0)", g.geom_type)
    return fixed


def repair_all(geoms: Iterable[BaseGeometry], geometry: ShapelyGeometry = default_geometry) -> list[BaseGeometry]:
    return [repair(g, geometry) for g in geoms]
