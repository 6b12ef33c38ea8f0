from pathlib import Path
from typing import List, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Site Inspector"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = False

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./site_inspector.db"

    # "memory" keeps jobs in process (lost on restart)
    RESULT_STORE_BACKEND: Literal["sql", "memory"] = "sql"

    # ── Page analysis ───────────────────────────
    FETCH_TIMEOUT_SECONDS: float = 10.0
    LINK_CHECK_TIMEOUT_SECONDS: float = 5.0
    LINK_CHECK_CONCURRENCY: int = 10
    SKIPPED_LINK_SCHEMES: List[str] = ["javascript"]
    USER_AGENT: str = "SiteInspector/1.0 (+https://github.com/site-inspector)"

    # Seconds to let in-flight analyses finish before cancelling them
    SHUTDOWN_GRACE_SECONDS: float = 10.0

    # ── Logging ─────────────────────────────────
    LOG_LEVEL: str = "INFO"
    # Empty string disables the log file
    LOG_DIR: str = "logs"
    LOG_FILE: str = "site_inspector.log"
    LOG_MAX_BYTES: int = 10_000_000
    LOG_BACKUP_COUNT: int = 5

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
