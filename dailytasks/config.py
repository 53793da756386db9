"""Runtime settings for dailytasks, read from environment variables (+ optional .env)."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from dailytasks.models.constants import (
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_RETRY_DELAY_SEC,
    DEFAULT_MAX_BACKUPS,
    DEFAULT_RETENTION_DAYS,
)

load_dotenv()

ENV_PREFIX = "DAILYTASKS"

STORAGE_FILE = "file"
STORAGE_SQL = "sql"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    storage: str = STORAGE_FILE
    tasks_file: Path = Path("./temp/tasks.json")
    backup_dir: Optional[Path] = None
    max_backups: int = DEFAULT_MAX_BACKUPS
    lock_retries: int = DEFAULT_LOCK_RETRIES
    lock_retry_delay_sec: float = DEFAULT_LOCK_RETRY_DELAY_SEC
    migration_enabled: bool = False
    retention_days: int = DEFAULT_RETENTION_DAYS
    strict_status_codes: bool = False
    log_level: str = "INFO"
    cors_origins: tuple = ("*",)

    @property
    def resolved_backup_dir(self) -> Path:
        """Backup directory, defaulting to ``backups/`` next to the tasks file."""
        return self.backup_dir or self.tasks_file.parent / "backups"


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    storage = os.getenv(_k("STORAGE"), STORAGE_FILE).strip().lower()
    if storage not in (STORAGE_FILE, STORAGE_SQL):
        raise ValueError(f"{_k('STORAGE')} must be '{STORAGE_FILE}' or '{STORAGE_SQL}', got {storage!r}")

    backup_dir = os.getenv(_k("BACKUP_DIR"))
    return Settings(
        storage=storage,
        tasks_file=Path(os.getenv(_k("FILE"), "./temp/tasks.json")),
        backup_dir=Path(backup_dir) if backup_dir else None,
        max_backups=_env_int(_k("MAX_BACKUPS"), DEFAULT_MAX_BACKUPS),
        lock_retries=_env_int(_k("LOCK_RETRIES"), DEFAULT_LOCK_RETRIES),
        lock_retry_delay_sec=_env_float(_k("LOCK_RETRY_DELAY_SEC"), DEFAULT_LOCK_RETRY_DELAY_SEC),
        migration_enabled=_env_bool(_k("MIGRATION_ENABLED"), False),
        retention_days=_env_int(_k("RETENTION_DAYS"), DEFAULT_RETENTION_DAYS),
        strict_status_codes=_env_bool(_k("STRICT_STATUS_CODES"), False),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(_split_origins(os.getenv("CORS_ORIGINS", "*"))) or ("*",),
    )
