from pydantic import BaseModel
from typing import Any, Optional

from .commons import ProcedureType, Severity


class ProcedureIn(BaseModel):
    procedure_code: str
    name: str
    type: ProcedureType
    airport_icao: str
    runway: Optional[str] = None
    description: Optional[str] = None
    protection_geometry: Optional[dict[str, Any]] = None  # GeoJSON（FeatureCollection of Polygon を想定）
    conflict_severity: Severity = "High"
    analysis_priority: int = 80
    is_active: bool = True


class ProcedureOut(BaseModel):
    id: int
    procedure_code: str
    name: str
    type: str
    airport_icao: str
    runway: Optional[str] = None
    description: Optional[str] = None
    protection_geometry: Optional[Any] = None
    conflict_severity: str
    analysis_priority: int
    is_active: bool


class ProcedureUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    protection_geometry: Optional[dict[str, Any]] = None
    conflict_severity: Optional[Severity] = None
    analysis_priority: Optional[int] = None
    is_active: Optional[bool] = None
