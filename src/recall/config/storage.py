import os
from pathlib import Path

_DEFAULT_SQLITE_PATH = Path("data") / "recall.db"


class Storage:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("recall", {}).get("storage", {})
        self.SQL_DB_PATH: str = str(cfg.get("sql_db_path", os.getenv("RECALL_DB_PATH", str(_DEFAULT_SQLITE_PATH))))
        self.BUSY_TIMEOUT_MS: int = int(cfg.get("busy_timeout_ms", os.getenv("RECALL_BUSY_TIMEOUT_MS", "3000")))
