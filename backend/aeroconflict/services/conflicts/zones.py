# backend/aeroconflict/services/conflicts/zones.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ProtectionZone:
    """Active protection area of a flight procedure, as read for analysis."""
    procedure_id: int
    name: str
    geometry: Union[str, dict]  # GeoJSON（FeatureCollection は Gateway 側で MultiPolygon に変換済み）
    procedure_code: str = ""
    protection_type: str = "OverallPrimary"
    severity: str = "High"
    priority: int = 80
    active: bool = True


@dataclass(frozen=True)
class ConflictDraft:
    """One conflict row to insert for a (project, zone) pair."""
    procedure_id: int
    description: str
    conflicting_geometry: str  # GeoJSON text, "{}" when no shape could be computed
    severity: str = "High"
