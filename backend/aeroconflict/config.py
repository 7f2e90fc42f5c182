from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    # 未指定なら db.py 側で data/app.db (SQLite) を使う
    database_url: str | None = os.getenv("DATABASE_URL")

    # Gateway 呼び出し1回あたりの上限（秒）
    gateway_timeout_s: float = float(os.getenv("GATEWAY_TIMEOUT_S", "30"))
    analysis_workers: int = int(os.getenv("ANALYSIS_WORKERS", "2"))
    analysis_queue_size: int = int(os.getenv("ANALYSIS_QUEUE_SIZE", "100"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
