from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from aeroconflict.api.routers import projects, procedures
from aeroconflict.config import settings
from aeroconflict.db import SessionLocal, init_db
from aeroconflict.services.conflicts.gateway import SqlAlchemyGateway
from aeroconflict.services.conflicts.orchestrator import AnalysisOrchestrator
from aeroconflict.services.conflicts.queue import AnalysisQueue

logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Aeronautical Conflict API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    queue = getattr(app.state, "analysis_queue", None)
    return {"ok": True, "analysis_workers": bool(queue and queue.running)}


# 初回起動時にDBスキーマを作成し、解析ワーカーを起動
@app.on_event("startup")
async def on_startup():
    init_db()
    orchestrator = AnalysisOrchestrator(SqlAlchemyGateway(SessionLocal), timeout=settings.gateway_timeout_s)
    app.state.analysis_queue = AnalysisQueue(
        orchestrator,
        workers=settings.analysis_workers,
        maxsize=settings.analysis_queue_size,
    )
    await app.state.analysis_queue.start()


@app.on_event("shutdown")
async def on_shutdown():
    queue = getattr(app.state, "analysis_queue", None)
    if queue is not None:
        await queue.stop()


app.include_router(projects.router,   prefix="/api/projects",   tags=["projects"])
app.include_router(procedures.router, prefix="/api/procedures", tags=["procedures"])
