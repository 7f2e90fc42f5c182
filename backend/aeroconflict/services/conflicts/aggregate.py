# backend/aeroconflict/services/conflicts/aggregate.py
from __future__ import annotations

import json
import logging
from typing import Sequence

from shapely.geometry.base import BaseGeometry

from aeroconflict.services.conflicts.zones import ConflictDraft, ProtectionZone
from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry, default_geometry

logger = logging.getLogger(__name__)

EMPTY_GEOMETRY = "{}"


def describe(zone: ProtectionZone) -> str:
    return f"Conflict with procedure {zone.procedure_id} in protection area '{zone.name}'."


def aggregate(
    zone: ProtectionZone,
    intersections: Sequence[BaseGeometry],
    geometry: ShapelyGeometry = default_geometry,
) -> ConflictDraft:
    """同じ保護区域への交差をまとめて 1 件の ConflictDraft にする。"""
    return ConflictDraft(
        procedure_id=zone.procedure_id,
        description=describe(zone),
        conflicting_geometry=_export(zone, intersections, geometry),
        severity=zone.severity,
    )


def _export(zone: ProtectionZone, intersections: Sequence[BaseGeometry], geometry: ShapelyGeometry) -> str:
    if not intersections:
        return EMPTY_GEOMETRY
    try:
        if len(intersections) == 1:
            g = intersections[0]
        else:
            g = geometry.collect(intersections)
        return json.dumps(geometry.export(g))
    except (GeometryError, TypeError, ValueError) as e:
        logger.warning("Failed to export intersection geometry for procedure %s: %s", zone.procedure_id, e)
        return EMPTY_GEOMETRY
