from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import date as Date
from typing import Optional
import asyncio
import json
import logging

from aeroconflict.db import get_db
from aeroconflict.models.conflict import Conflict
from aeroconflict.models.project import Project, ProjectStatus
from aeroconflict.models.project_geometry import ProjectGeometry
from aeroconflict.schemas.conflict import ConflictOut
from aeroconflict.schemas.project import ProjectIn, ProjectOut, SubmitIn, SubmitOut
from aeroconflict.services.geometry.measure import geodesic_area_m2
from aeroconflict.services.geometry.normalize import as_feature_collection, validate_geojson

router = APIRouter()
logger = logging.getLogger(__name__)


def _out(p: Project) -> ProjectOut:
    return ProjectOut(
        id=p.id,
        project_code=p.project_code,
        title=p.title,
        description=p.description,
        operation_type=p.operation_type,
        altitude_min=p.altitude_min,
        altitude_max=p.altitude_max,
        status=p.status,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _next_project_code(db: Session) -> str:
    # PROJ-<年>-<3桁連番>
    prefix = f"PROJ-{Date.today().year}-"
    codes = db.query(Project.project_code).filter(Project.project_code.like(f"{prefix}%")).all()
    seqs = [int(c[len(prefix):]) for (c,) in codes if c[len(prefix):].isdigit()]
    return f"{prefix}{(max(seqs) + 1) if seqs else 1:03d}"


def _primary_geometry(db: Session, project_id: int) -> Optional[ProjectGeometry]:
    return (
        db.query(ProjectGeometry)
        .filter(ProjectGeometry.project_id == project_id, ProjectGeometry.is_primary.is_(True))
        .first()
    )


def _merge_project_geometry(db: Session, project_id: int, incoming: dict) -> dict:
    """既存の FeatureCollection に新しい Feature を追記（置き換えではない）"""
    row = _primary_geometry(db, project_id)
    collection = None
    if row is not None:
        try:
            collection = json.loads(row.geometry_data)
        except json.JSONDecodeError:
            logger.warning("Stored geometry of project %s is not JSON, starting a new collection", project_id)
    if not isinstance(collection, dict) or collection.get("type") != "FeatureCollection":
        collection = {"type": "FeatureCollection", "features": []}

    collection["features"].extend(as_feature_collection(incoming)["features"])

    data = json.dumps(collection, ensure_ascii=False)
    if row is None:
        row = ProjectGeometry(project_id=project_id, geometry_data=data, is_primary=True, geometry_type="collection")
    else:
        row.geometry_data = data
    db.add(row)
    return collection


def _save_submission(db: Session, project_id: int, geometry: Optional[dict]) -> tuple[ProjectOut, str, Optional[str]]:
    """
    GeoJSON を検証して追記し、Pending で確定する。
    キュー投入に失敗したとき戻せるよう、直前のステータスとジオメトリを返す。
    """
    p = db.get(Project, project_id)
    if not p:
        raise HTTPException(status_code=404, detail="project not found")
    if geometry is not None:
        err = validate_geojson(geometry)
        if err:
            raise HTTPException(status_code=400, detail=f"Invalid GeoJSON: {err}")

    previous_status = p.status
    row = _primary_geometry(db, project_id)
    previous_geometry = row.geometry_data if row is not None else None

    if geometry is not None:
        _merge_project_geometry(db, project_id, geometry)
    p.status = ProjectStatus.PENDING.value
    db.add(p)
    db.commit()
    db.refresh(p)
    return _out(p), previous_status, previous_geometry


def _undo_submission(db: Session, project_id: int, status: str, geometry_data: Optional[str]) -> None:
    p = db.get(Project, project_id)
    p.status = status
    row = _primary_geometry(db, project_id)
    if row is not None:
        if geometry_data is None:
            db.delete(row)
        else:
            row.geometry_data = geometry_data
    db.commit()


@router.get("/ping")
def ping():
    return {"ok": True, "router": "projects"}


@router.get("")
@router.get("/")
def list_projects(status: ProjectStatus | None = None, db: Session = Depends(get_db)) -> list[ProjectOut]:
    q = db.query(Project)
    if status is not None:
        q = q.filter(Project.status == status.value)
    return [_out(p) for p in q.order_by(Project.id.asc()).all()]


@router.post("")
@router.post("/")
def create_project(payload: ProjectIn, db: Session = Depends(get_db)) -> ProjectOut:
    obj = Project(
        project_code=payload.project_code or _next_project_code(db),
        title=payload.title,
        description=payload.description,
        operation_type=payload.operation_type,
        altitude_min=payload.altitude_min,
        altitude_max=payload.altitude_max,
        status=ProjectStatus.CREATED.value,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _out(obj)


@router.get("/{project_id}")
def get_project(project_id: int, db: Session = Depends(get_db)) -> ProjectOut:
    p = db.get(Project, project_id)
    if not p:
        raise HTTPException(status_code=404, detail="project not found")
    return _out(p)


@router.post("/{project_id}/submit", status_code=202)
async def submit_project(project_id: int, payload: SubmitIn, request: Request, db: Session = Depends(get_db)):
    queue = getattr(request.app.state, "analysis_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="analysis queue is not running")

    # 1) 検証・追記保存・Pending 更新（DB 処理はスレッドで）
    out, previous_status, previous_geometry = await run_in_threadpool(
        _save_submission, db, project_id, payload.geometry
    )

    # 2) バックグラウンド解析を投入（結果は待たない）。溢れたら保存を戻す
    try:
        queue.submit(project_id)
    except asyncio.QueueFull:
        logger.error("Analysis queue is full, submission of project %s rolled back", project_id)
        await run_in_threadpool(_undo_submission, db, project_id, previous_status, previous_geometry)
        raise HTTPException(status_code=503, detail="analysis queue is full")

    body = SubmitOut(message="Project submission accepted. Analysis is in progress.", data=out)
    return JSONResponse(status_code=202, content=body.model_dump(mode="json"))


@router.get("/{project_id}/geometry")
def get_project_geometry(project_id: int, db: Session = Depends(get_db)):
    if not db.get(Project, project_id):
        raise HTTPException(status_code=404, detail="project not found")
    row = _primary_geometry(db, project_id)
    if row is None:
        return {"type": "FeatureCollection", "features": []}
    try:
        return json.loads(row.geometry_data)
    except json.JSONDecodeError:
        raise HTTPException(status_code=500, detail="stored geometry is not valid JSON")


@router.get("/{project_id}/conflicts")
def list_conflicts(project_id: int, db: Session = Depends(get_db)) -> list[ConflictOut]:
    if not db.get(Project, project_id):
        raise HTTPException(status_code=404, detail="project not found")
    rows = db.query(Conflict).filter(Conflict.project_id == project_id).order_by(Conflict.id.asc()).all()
    out = []
    for c in rows:
        try:
            geom = json.loads(c.conflicting_geometry or "{}")
        except json.JSONDecodeError:
            geom = {}
        out.append(ConflictOut(
            id=c.id,
            project_id=c.project_id,
            flight_procedure_id=c.flight_procedure_id,
            description=c.description,
            conflicting_geometry=geom,
            severity=c.severity,
            area_m2=geodesic_area_m2(geom),
            created_at=c.created_at,
            updated_at=c.updated_at,
        ))
    return out
