import asyncio
import json
import os

# アプリ側の engine はインメモリで作らせる（import 前に設定）
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from sqlalchemy.orm import sessionmaker

from aeroconflict.db import init_db, make_engine
from aeroconflict.models.flight_procedure import FlightProcedure
from aeroconflict.models.project import Project, ProjectStatus
from aeroconflict.models.project_geometry import ProjectGeometry
from aeroconflict.services.conflicts.gateway import SqlAlchemyGateway
from aeroconflict.services.conflicts.zones import ProtectionZone


def square(x0, y0, size=1.0):
    return {
        "type": "Polygon",
        "coordinates": [[[x0, y0], [x0 + size, y0], [x0 + size, y0 + size], [x0, y0 + size], [x0, y0]]],
    }


def feature_collection(*geoms):
    return {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "geometry": g, "properties": {}} for g in geoms],
    }


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def gateway(session_factory):
    return SqlAlchemyGateway(session_factory)


@pytest.fixture
def add_project(session_factory):
    def _add(geometry=None, status=ProjectStatus.PENDING, code=None):
        with session_factory() as db:
            p = Project(project_code=code or f"PROJ-TEST-{db.query(Project).count() + 1:03d}",
                        title="Survey flight", status=status.value)
            db.add(p)
            db.flush()
            if geometry is not None:
                db.add(ProjectGeometry(project_id=p.id, geometry_data=json.dumps(geometry), is_primary=True))
            db.commit()
            return p.id
    return _add


@pytest.fixture
def add_procedure(session_factory):
    def _add(protection, name="Noise Zone A", procedure_id=None, active=True, severity="High"):
        with session_factory() as db:
            fp = FlightProcedure(
                id=procedure_id,
                procedure_code=f"RWY09-{name}-{procedure_id or db.query(FlightProcedure).count() + 1}",
                name=name,
                type="SID",
                airport_icao="LFPG",
                protection_geometry=protection if isinstance(protection, str) or protection is None else json.dumps(protection),
                conflict_severity=severity,
                is_active=active,
            )
            db.add(fp)
            db.commit()
            return fp.id
    return _add


@pytest.fixture
def project_status(session_factory):
    def _status(project_id):
        with session_factory() as db:
            return db.get(Project, project_id).status
    return _status


class FakeGateway:
    """メモリ上の Gateway。呼び出し順を trace に記録する。"""

    def __init__(self, geometry=None, zones=(), delay=0.0):
        self.geometry = geometry
        self.zones = list(zones)
        self.delay = delay
        self.conflicts = []
        self.status = ProjectStatus.PENDING
        self.trace = []
        self.fail_insert_for = set()
        self.fail_status = False
        self.fail_delete = False
        self.delete_gate = None
        self.hang_on = None

    async def _step(self, name, project_id=None):
        self.trace.append((name, project_id))
        if self.hang_on == name:
            await asyncio.sleep(3600)
        if self.delay:
            await asyncio.sleep(self.delay)

    async def delete_conflicts(self, project_id):
        await self._step("delete", project_id)
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        if self.fail_delete:
            raise RuntimeError("delete failed")
        n = len(self.conflicts)
        self.conflicts = []
        return n

    async def fetch_project_geometry(self, project_id):
        await self._step("fetch_geometry", project_id)
        if self.geometry is None:
            return None
        return self.geometry if isinstance(self.geometry, str) else json.dumps(self.geometry)

    async def fetch_active_zones(self):
        await self._step("fetch_zones")
        return list(self.zones)

    async def insert_conflict(self, project_id, draft):
        await self._step("insert", project_id)
        if draft.procedure_id in self.fail_insert_for:
            raise RuntimeError("insert failed")
        self.conflicts.append(draft)
        return len(self.conflicts)

    async def get_project_status(self, project_id):
        return self.status

    async def set_project_status(self, project_id, status):
        await self._step("status", project_id)
        if self.fail_status:
            raise RuntimeError("update failed")
        self.status = status
        return True


@pytest.fixture
def fake_gateway():
    def _make(geometry=None, zones=(), delay=0.0):
        return FakeGateway(geometry=geometry, zones=zones, delay=delay)
    return _make


@pytest.fixture
def zone():
    def _zone(geometry, procedure_id=42, name="Noise Zone A"):
        return ProtectionZone(procedure_id=procedure_id, name=name, geometry=geometry)
    return _zone
