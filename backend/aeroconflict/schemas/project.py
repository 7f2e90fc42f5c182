from pydantic import BaseModel
from typing import Any, Optional
import datetime as dt

from .commons import ProjectStatusName


class ProjectIn(BaseModel):
    title: str
    project_code: Optional[str] = None  # 未指定ならサーバ側で採番
    description: Optional[str] = None
    operation_type: Optional[str] = None
    altitude_min: Optional[int] = None
    altitude_max: Optional[int] = None


class ProjectOut(BaseModel):
    id: int
    project_code: str
    title: str
    description: Optional[str] = None
    operation_type: Optional[str] = None
    altitude_min: Optional[int] = None
    altitude_max: Optional[int] = None
    status: ProjectStatusName
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class SubmitIn(BaseModel):
    # Feature / FeatureCollection / 生ジオメトリのいずれか（任意）
    geometry: Optional[dict[str, Any]] = None


class SubmitOut(BaseModel):
    message: str
    data: ProjectOut
