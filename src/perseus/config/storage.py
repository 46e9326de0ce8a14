import os
from pathlib import Path

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent.parent / "data" / "perseus.sqlite3"


class Storage:
    def __init__(self, config: dict | None = None) -> None:
        storage_cfg = (config or {}).get("perseus", {}).get("storage", {})
        self.BACKEND: str = str(storage_cfg.get("backend", os.getenv("STORAGE_BACKEND", "sqlite"))).lower()
        self.DB_PATH: str = str(storage_cfg.get("db_path", os.getenv("STORAGE_DB_PATH", str(_DEFAULT_DB_PATH))))
        self.IDENTIFIER_TTL: int = int(storage_cfg.get("identifier_ttl", os.getenv("IDENTIFIER_TTL", "3600")))
        self.USER_TTL: int = int(storage_cfg.get("user_ttl", os.getenv("USER_TTL", "86400")))
        self.MODERATION_TTL: float = float(storage_cfg.get("moderation_ttl", os.getenv("MODERATION_TTL", "60")))
        self.SWEEP_INTERVAL: float = float(storage_cfg.get("sweep_interval", os.getenv("CACHE_SWEEP_INTERVAL", "900")))
