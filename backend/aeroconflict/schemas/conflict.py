from pydantic import BaseModel
from typing import Any, Optional
import datetime as dt


class ConflictOut(BaseModel):
    id: int
    project_id: int
    flight_procedure_id: int
    description: Optional[str] = None
    conflicting_geometry: Any  # パース済み GeoJSON（交差形状なしは {}）
    severity: Optional[str] = None
    area_m2: Optional[float] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
