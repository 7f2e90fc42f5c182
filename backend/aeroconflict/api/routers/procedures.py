from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import json

from aeroconflict.db import get_db
from aeroconflict.models.conflict import Conflict
from aeroconflict.models.flight_procedure import FlightProcedure
from aeroconflict.schemas.procedure import ProcedureIn, ProcedureOut, ProcedureUpdate
from aeroconflict.services.geometry.normalize import validate_geojson

router = APIRouter()


def _out(fp: FlightProcedure) -> ProcedureOut:
    geom = None
    if fp.protection_geometry:
        try:
            geom = json.loads(fp.protection_geometry)
        except json.JSONDecodeError:
            geom = None
    return ProcedureOut(
        id=fp.id,
        procedure_code=fp.procedure_code,
        name=fp.name,
        type=fp.type,
        airport_icao=fp.airport_icao,
        runway=fp.runway,
        description=fp.description,
        protection_geometry=geom,
        conflict_severity=fp.conflict_severity or "High",
        analysis_priority=fp.analysis_priority if fp.analysis_priority is not None else 80,
        is_active=bool(fp.is_active),
    )


def _protection_text(geom: dict) -> str:
    err = validate_geojson(geom)
    if err:
        raise HTTPException(status_code=400, detail=f"Invalid GeoJSON: {err}")
    return json.dumps(geom, ensure_ascii=False)


@router.get("/ping")
def ping():
    return {"ok": True, "router": "procedures"}


@router.get("")
@router.get("/")
def list_procedures(active: bool | None = None, db: Session = Depends(get_db)) -> list[ProcedureOut]:
    q = db.query(FlightProcedure)
    if active is not None:
        q = q.filter(FlightProcedure.is_active.is_(active))
    return [_out(fp) for fp in q.order_by(FlightProcedure.id.asc()).all()]


@router.post("")
@router.post("/")
def create_procedure(payload: ProcedureIn, db: Session = Depends(get_db)) -> ProcedureOut:
    if db.query(FlightProcedure).filter(FlightProcedure.procedure_code == payload.procedure_code).first():
        raise HTTPException(status_code=409, detail="procedure_code already exists")
    obj = FlightProcedure(
        procedure_code=payload.procedure_code,
        name=payload.name,
        type=payload.type,
        airport_icao=payload.airport_icao,
        runway=payload.runway,
        description=payload.description,
        protection_geometry=_protection_text(payload.protection_geometry) if payload.protection_geometry else None,
        conflict_severity=payload.conflict_severity,
        analysis_priority=payload.analysis_priority,
        is_active=payload.is_active,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return _out(obj)


@router.get("/{procedure_id}")
def get_procedure(procedure_id: int, db: Session = Depends(get_db)) -> ProcedureOut:
    fp = db.get(FlightProcedure, procedure_id)
    if not fp:
        raise HTTPException(status_code=404, detail="procedure not found")
    return _out(fp)


@router.patch("/{procedure_id}")
def update_procedure(procedure_id: int, payload: ProcedureUpdate, db: Session = Depends(get_db)) -> ProcedureOut:
    fp = db.get(FlightProcedure, procedure_id)
    if not fp:
        raise HTTPException(status_code=404, detail="procedure not found")
    if payload.name is not None:
        fp.name = payload.name
    if payload.description is not None:
        fp.description = payload.description
    if payload.protection_geometry is not None:
        fp.protection_geometry = _protection_text(payload.protection_geometry)
    if payload.conflict_severity is not None:
        fp.conflict_severity = payload.conflict_severity
    if payload.analysis_priority is not None:
        fp.analysis_priority = payload.analysis_priority
    if payload.is_active is not None:
        fp.is_active = payload.is_active
    db.add(fp)
    db.commit()
    db.refresh(fp)
    return _out(fp)


@router.delete("/{procedure_id}")
def delete_procedure(procedure_id: int, db: Session = Depends(get_db)):
    fp = db.get(FlightProcedure, procedure_id)
    if not fp:
        raise HTTPException(status_code=404, detail="procedure not found")
    # 紐づく競合も消す（SQLite では FK の CASCADE が効かないため明示）
    db.query(Conflict).filter(Conflict.flight_procedure_id == procedure_id).delete()
    db.delete(fp)
    db.commit()
    return {"ok": True}
