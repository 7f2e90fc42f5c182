from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from pathlib import Path

from aeroconflict.config import settings
# モデル定義側の Base（aeroconflict.models.base）を利用してメタデータを統一
from aeroconflict.models.base import Base

# 1) DATABASE_URL が指定されていれば優先（例: postgresql+psycopg://...）
# 2) それ以外は SQLite を使用
if settings.database_url:
    SQLALCHEMY_DATABASE_URL = settings.database_url
else:
    _container_data = Path("/app/data")
    if _container_data.exists():
        db_path = _container_data / "app.db"
    else:
        # backend/aeroconflict/db.py → ../../.. = <repo root>
        repo_root = Path(__file__).resolve().parents[2]
        db_path = repo_root / "data" / "app.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)
    SQLALCHEMY_DATABASE_URL = f"sqlite:///{db_path}"


def make_engine(url: str):
    is_sqlite = url.startswith("sqlite")
    kwargs = {}
    if is_sqlite:
        # 解析はワーカースレッドからも同じ接続を使う
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # インメモリDBは接続ごとに別DBになるため1接続を共有
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


engine = make_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    # パッケージ配下の各モデルモジュールを明示 import してメタデータ登録を確実化
    import aeroconflict.models.project  # noqa: F401
    import aeroconflict.models.project_geometry  # noqa: F401
    import aeroconflict.models.flight_procedure  # noqa: F401
    import aeroconflict.models.conflict  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
