# backend/aeroconflict/services/conflicts/orchestrator.py
"""
案件 1 件分の競合解析。

    Idle → Fetching → Normalizing → Testing → Persisting → Completed
                 └──────────┴─────→ Aborted（入力なし）

バックグラウンドで動くため run() は例外を外に出さない。
結果はログと DB の最終状態（conflicts の件数・案件ステータス）でのみ観測できる。
"""
from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Optional, TypeVar

from shapely.geometry.base import BaseGeometry

from aeroconflict.config import settings
from aeroconflict.models.project import ProjectStatus
from aeroconflict.services.conflicts.aggregate import aggregate
from aeroconflict.services.conflicts.gateway import PersistenceGateway
from aeroconflict.services.conflicts.intersect import IntersectionTester
from aeroconflict.services.conflicts.zones import ConflictDraft, ProtectionZone
from aeroconflict.services.geometry.capability import GeometryError, ShapelyGeometry, default_geometry
from aeroconflict.services.geometry.normalize import GeoJSONDecodeError, normalize
from aeroconflict.services.geometry.repair import repair

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AnalysisState(str, enum.Enum):
    IDLE = "Idle"
    FETCHING = "Fetching"
    NORMALIZING = "Normalizing"
    TESTING = "Testing"
    PERSISTING = "Persisting"
    COMPLETED = "Completed"
    ABORTED = "Aborted"


class GatewayCallFailed(Exception):
    """A gateway call raised or timed out; already logged."""


@dataclass
class AnalysisReport:
    project_id: int
    state: AnalysisState = AnalysisState.IDLE
    geometry_count: int = 0
    zones_tested: int = 0
    zones_skipped: int = 0
    conflicts_found: int = 0
    conflicts_saved: int = 0
    status_updated: bool = False
    abort_reason: Optional[str] = None
    drafts: list[ConflictDraft] = field(default_factory=list)


class AnalysisOrchestrator:
    def __init__(
        self,
        gateway: PersistenceGateway,
        geometry: ShapelyGeometry = default_geometry,
        timeout: float = settings.gateway_timeout_s,
    ):
        self.gateway = gateway
        self.geometry = geometry
        self.timeout = timeout
        self.tester = IntersectionTester(geometry)
        # 同一案件の解析を直列化するためのロック（保持中の数で掃除する）
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: dict[int, int] = {}
        # 打ち切ったがまだ終わっていない書き込み
        self._unsettled: dict[int, list[asyncio.Future]] = {}

    async def run(self, project_id: int) -> AnalysisReport:
        report = AnalysisReport(project_id=project_id)
        async with self._serialized(project_id):
            logger.info("Starting conflict analysis for project %s", project_id)
            try:
                await self._run(report)
            except Exception:
                # 想定外の失敗もここで止める（呼び出し元は待っていない）
                logger.exception("Conflict analysis for project %s failed in state %s", project_id, report.state.value)
                if report.state is not AnalysisState.COMPLETED:
                    self._abort(report, "unexpected error")
        return report

    @asynccontextmanager
    async def _serialized(self, project_id: int):
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        self._holders[project_id] = self._holders.get(project_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[project_id] -= 1
            if not self._holders[project_id]:
                del self._holders[project_id]
                del self._locks[project_id]

    async def _run(self, report: AnalysisReport) -> None:
        pid = report.project_id

        # 1) Fetching: 古い競合を消してから入力を取得（置き換え）
        #    消せなければ新しい競合を書かずに中断する
        self._enter(report, AnalysisState.FETCHING)
        try:
            await self._settle(pid)
            await self._call(self.gateway.delete_conflicts(pid), f"delete conflicts of project {pid}", write_for=pid)
        except GatewayCallFailed:
            return self._abort(report, "stale conflicts not cleared")
        try:
            project_geojson = await self._call(self.gateway.fetch_project_geometry(pid), f"fetch geometry of project {pid}")
            zones = await self._call(self.gateway.fetch_active_zones(), "fetch active protection zones")
        except GatewayCallFailed:
            return self._abort(report, "gateway fetch failed")

        if not project_geojson or not zones:
            logger.warning("No project geometry or no protection zones found. Aborting analysis for project %s.", pid)
            return self._abort(report, "no project geometry" if not project_geojson else "no active protection zones")

        # 2) Normalizing
        self._enter(report, AnalysisState.NORMALIZING)
        try:
            project_geoms = self._geometry_set(project_geojson)
        except GeoJSONDecodeError as e:
            logger.error("Project %s geometry is not valid JSON: %s", pid, e)
            return self._abort(report, "project geometry is not JSON")
        if not project_geoms:
            logger.error("No valid geometries found for project %s", pid)
            return self._abort(report, "empty geometry set")
        report.geometry_count = len(project_geoms)
        logger.info("Found %d valid geometries for project %s", len(project_geoms), pid)

        # 3) Testing: 保護区域ごとに判定
        self._enter(report, AnalysisState.TESTING)
        for zone in zones:
            zone_geom = self._zone_geometry(zone)
            if zone_geom is None:
                report.zones_skipped += 1
                continue
            report.zones_tested += 1
            result = self.tester.test(project_geoms, zone_geom, label=f"procedure {zone.procedure_id}")
            if result.hit:
                report.drafts.append(aggregate(zone, result.intersections, self.geometry))
        report.conflicts_found = len(report.drafts)

        # 4) Persisting: 1件の失敗で残りを止めない
        self._enter(report, AnalysisState.PERSISTING)
        for draft in report.drafts:
            try:
                await self._call(
                    self.gateway.insert_conflict(pid, draft),
                    f"save conflict for project {pid} and procedure {draft.procedure_id}",
                    write_for=pid,
                )
            except GatewayCallFailed:
                continue
            report.conflicts_saved += 1
            logger.info("Saved conflict for project %s with procedure %s", pid, draft.procedure_id)

        logger.info("Conflict analysis for project %s complete. Found %d conflicts.", pid, report.conflicts_found)

        # 5) 競合の有無に関わらず Under_Review へ（再試行はしない）
        try:
            updated = await self._call(
                self.gateway.set_project_status(pid, ProjectStatus.UNDER_REVIEW),
                f"update status of project {pid}",
                write_for=pid,
            )
        except GatewayCallFailed:
            updated = False
        else:
            if updated:
                logger.info("Updated project %s status to %s", pid, ProjectStatus.UNDER_REVIEW.value)
            else:
                logger.error("Could not find project %s to update its status after analysis", pid)
        report.status_updated = bool(updated)
        self._enter(report, AnalysisState.COMPLETED)

    def _geometry_set(self, payload) -> list[BaseGeometry]:
        geoms = []
        for g in normalize(payload, self.geometry):
            g = repair(g, self.geometry)
            if g.is_empty:
                logger.warning("Dropping empty %s", g.geom_type)
                continue
            geoms.append(g)
        return geoms

    def _zone_geometry(self, zone: ProtectionZone) -> Optional[BaseGeometry]:
        try:
            parts = self._geometry_set(zone.geometry)
        except GeoJSONDecodeError as e:
            logger.warning("Could not parse protection geometry for procedure %s, skipping: %s", zone.procedure_id, e)
            return None
        if not parts:
            logger.warning("Protection geometry for procedure %s is empty, skipping", zone.procedure_id)
            return None
        if len(parts) == 1:
            return parts[0]
        try:
            return repair(self.geometry.merge(parts), self.geometry)
        except GeometryError as e:
            logger.warning("Could not merge protection geometry for procedure %s, skipping: %s", zone.procedure_id, e)
            return None

    async def _call(self, aw: Awaitable[T], what: str, write_for: Optional[int] = None) -> T:
        """
        Gateway 呼び出しを timeout 秒で打ち切る。
        書き込み（write_for に案件ID）はスレッド側で走り続けるので取り消さず、
        次の解析が _settle で終わりを待つ。
        """
        if write_for is None:
            try:
                return await asyncio.wait_for(aw, timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.error("Timed out after %.1fs: %s", self.timeout, what)
                raise GatewayCallFailed(what)
            except Exception:
                logger.exception("Failed to %s", what)
                raise GatewayCallFailed(what)

        task = asyncio.ensure_future(aw)
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if not done:
            logger.error("Timed out after %.1fs: %s", self.timeout, what)
            task.add_done_callback(_log_late_failure)
            self._unsettled.setdefault(write_for, []).append(task)
            raise GatewayCallFailed(what)
        try:
            return task.result()
        except Exception:
            logger.exception("Failed to %s", what)
            raise GatewayCallFailed(what)

    async def _settle(self, project_id: int) -> None:
        """前回の解析で打ち切った書き込みが終わるまで待つ。"""
        pending = [t for t in self._unsettled.pop(project_id, []) if not t.done()]
        if not pending:
            return
        logger.info("Waiting for %d earlier write(s) of project %s", len(pending), project_id)
        _, still = await asyncio.wait(pending, timeout=self.timeout)
        if still:
            self._unsettled[project_id] = list(still)
            logger.error("Earlier writes of project %s are still running", project_id)
            raise GatewayCallFailed(f"settle earlier writes of project {project_id}")

    def _enter(self, report: AnalysisReport, state: AnalysisState) -> None:
        logger.debug("project %s: %s -> %s", report.project_id, report.state.value, state.value)
        report.state = state

    def _abort(self, report: AnalysisReport, reason: str) -> None:
        report.abort_reason = reason
        self._enter(report, AnalysisState.ABORTED)


def _log_late_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    e = task.exception()
    if e is not None:
        logger.error("Abandoned gateway write failed later: %r", e)
