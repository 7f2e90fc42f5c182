# backend/aeroconflict/services/conflicts/gateway.py
from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from aeroconflict.models.conflict import Conflict
from aeroconflict.models.flight_procedure import FlightProcedure
from aeroconflict.models.project import Project, ProjectStatus
from aeroconflict.models.project_geometry import ProjectGeometry
from aeroconflict.services.conflicts.zones import ConflictDraft, ProtectionZone
from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry, default_geometry

logger = logging.getLogger(__name__)


class PersistenceGateway(Protocol):
    async def delete_conflicts(self, project_id: int) -> int:
        ...

    async def fetch_project_geometry(self, project_id: int) -> Optional[str]:
        """Primary GeoJSON FeatureCollection of the project, or None."""
        ...

    async def fetch_active_zones(self) -> list[ProtectionZone]:
        ...

    async def insert_conflict(self, project_id: int, draft: ConflictDraft) -> int:
        ...

    async def get_project_status(self, project_id: int) -> Optional[ProjectStatus]:
        ...

    async def set_project_status(self, project_id: int, status: ProjectStatus) -> bool:
        """False when the project does not exist."""
        ...


class SqlAlchemyGateway:
    """
    ORM 経由の Gateway 実装。
    セッション処理は同期なので to_thread でイベントループを塞がないようにする。
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def delete_conflicts(self, project_id: int) -> int:
        return await asyncio.to_thread(self._delete_conflicts, project_id)

    async def fetch_project_geometry(self, project_id: int) -> Optional[str]:
        return await asyncio.to_thread(self._fetch_project_geometry, project_id)

    async def fetch_active_zones(self) -> list[ProtectionZone]:
        return await asyncio.to_thread(self._fetch_active_zones)

    async def insert_conflict(self, project_id: int, draft: ConflictDraft) -> int:
        return await asyncio.to_thread(self._insert_conflict, project_id, draft)

    async def get_project_status(self, project_id: int) -> Optional[ProjectStatus]:
        return await asyncio.to_thread(self._get_project_status, project_id)

    async def set_project_status(self, project_id: int, status: ProjectStatus) -> bool:
        return await asyncio.to_thread(self._set_project_status, project_id, status)

    def _delete_conflicts(self, project_id: int) -> int:
        with self.session_factory() as db:
            res = db.execute(delete(Conflict).where(Conflict.project_id == project_id))
            db.commit()
            logger.debug("Deleted %d existing conflicts for project %s", res.rowcount, project_id)
            return res.rowcount

    def _fetch_project_geometry(self, project_id: int) -> Optional[str]:
        with self.session_factory() as db:
            q = (
                select(ProjectGeometry.geometry_data)
                .where(ProjectGeometry.project_id == project_id, ProjectGeometry.is_primary.is_(True))
                .limit(1)
            )
            return db.execute(q).scalar_one_or_none()

    def _fetch_active_zones(self) -> list[ProtectionZone]:
        with self.session_factory() as db:
            q = (
                select(FlightProcedure)
                .where(
                    FlightProcedure.is_active.is_(True),
                    FlightProcedure.protection_geometry.is_not(None),
                    FlightProcedure.protection_geometry != "",
                )
                .order_by(FlightProcedure.id.asc())
            )
            zones = [
                ProtectionZone(
                    procedure_id=fp.id,
                    name=fp.name,
                    geometry=protection_to_multipolygon(fp.protection_geometry, fp.id),
                    procedure_code=fp.procedure_code,
                    severity=fp.conflict_severity or "High",
                    priority=fp.analysis_priority if fp.analysis_priority is not None else 80,
                    active=True,
                )
                for fp in db.execute(q).scalars()
            ]
        logger.info("Found %d active flight procedure protections for analysis", len(zones))
        return zones

    def _insert_conflict(self, project_id: int, draft: ConflictDraft) -> int:
        with self.session_factory() as db:
            obj = Conflict(
                project_id=project_id,
                flight_procedure_id=draft.procedure_id,
                description=draft.description,
                conflicting_geometry=draft.conflicting_geometry,
                severity=draft.severity,
            )
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return obj.id

    def _get_project_status(self, project_id: int) -> Optional[ProjectStatus]:
        with self.session_factory() as db:
            p = db.get(Project, project_id)
            return ProjectStatus(p.status) if p else None

    def _set_project_status(self, project_id: int, status: ProjectStatus) -> bool:
        with self.session_factory() as db:
            p = db.get(Project, project_id)
            if not p:
                return False
            p.status = status.value
            db.add(p)
            db.commit()
            return True


def protection_to_multipolygon(
    text: str,
    procedure_id: int | None = None,
    geometry: ShapelyGeometry = default_geometry,
) -> str:
    """
    保護区域の FeatureCollection（Polygon 群）を 1 つの MultiPolygon にまとめる。
    読めないポリゴンはその部分だけ捨てる。
    FeatureCollection 以外はそのまま返す。JSON として読めなければ "{}"。
    """
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Could not parse protection geometry for procedure %s: %s", procedure_id, e)
        return "{}"

    if not isinstance(doc, dict) or not isinstance(doc.get("features"), list):
        return text

    coords = []
    for i, feature in enumerate(doc["features"]):
        geom = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geom, dict):
            continue
        if geom.get("type") == "Polygon":
            polygons = [geom.get("coordinates")]
        elif geom.get("type") == "MultiPolygon":
            polygons = geom.get("coordinates") or []
        else:
            continue
        for polygon in polygons:
            try:
                part = geometry.parse({"type": "Polygon", "coordinates": polygon})
            except GeometryError as e:
                logger.warning("Dropping unreadable polygon in feature %d of procedure %s: %s", i, procedure_id, e)
                continue
            if not part.is_empty:
                coords.append(polygon)
    return json.dumps({"type": "MultiPolygon", "coordinates": coords})
