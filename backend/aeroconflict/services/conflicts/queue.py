# backend/aeroconflict/services/conflicts/queue.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from aeroconflict.services.conflicts.orchestrator import AnalysisOrchestrator, AnalysisReport

logger = logging.getLogger(__name__)


@dataclass
class _Job:
    project_id: int
    future: asyncio.Future


class AnalysisQueue:
    """
    解析ジョブの待ち行列とワーカー群。
    - 待機中ジョブがある案件への再投入は同じジョブにまとめる
    - 実行中の案件への再投入は新しいジョブとして積む（実行はオーケストレーター側で直列化）
    - submit() の Future で完了を観測できる（API からは待たない）
    """

    def __init__(self, orchestrator: AnalysisOrchestrator, workers: int = 2, maxsize: int = 100):
        self.orchestrator = orchestrator
        self.workers = workers
        self._queue: asyncio.Queue[_Job] = asyncio.Queue(maxsize=maxsize)
        self._waiting: dict[int, _Job] = {}
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        for n in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(n), name=f"analysis-worker-{n}"))
        logger.info("Started %d analysis workers", self.workers)

    async def stop(self) -> None:
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        for job in self._waiting.values():
            job.future.cancel()
        self._waiting.clear()
        logger.info("Stopped analysis workers")

    def submit(self, project_id: int) -> asyncio.Future:
        """Enqueue an analysis run. Raises asyncio.QueueFull when saturated."""
        job = self._waiting.get(project_id)
        if job is not None:
            logger.info("Analysis for project %s already queued, merging trigger", project_id)
            return job.future

        job = _Job(project_id, asyncio.get_running_loop().create_future())
        self._queue.put_nowait(job)
        self._waiting[project_id] = job
        logger.info("Queued conflict analysis for project %s", project_id)
        return job.future

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self, n: int) -> None:
        while True:
            job = await self._queue.get()
            # 取り出した時点で待機扱いを外す（以降の投入は新しいジョブになる）
            if self._waiting.get(job.project_id) is job:
                del self._waiting[job.project_id]

            report: Optional[AnalysisReport] = None
            try:
                report = await self.orchestrator.run(job.project_id)
            except asyncio.CancelledError:
                job.future.cancel()
                raise
            except Exception:
                logger.exception("analysis-worker-%d: run for project %s crashed", n, job.project_id)
            finally:
                self._queue.task_done()

            if not job.future.done():
                job.future.set_result(report)
