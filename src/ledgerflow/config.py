"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, rejecting garbage early."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "LedgerFlow"
    DB_FILENAME = "ledgerflow.db"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("LEDGERFLOW_DEV_MODE", default=True)
        self.DATABASE_URL = os.getenv("LEDGERFLOW_DATABASE_URL", self._build_sqlite_url())
        self.SQLITE_TIMEOUT = _env_int("LEDGERFLOW_SQLITE_TIMEOUT", 30)
        self.CONFLICT_RETRIES = _env_int("LEDGERFLOW_CONFLICT_RETRIES", 3)
        self.DEFAULT_CLOSING_DAY = _env_int("LEDGERFLOW_DEFAULT_CLOSING_DAY", 15)
        self.DEFAULT_DUE_DAY = _env_int("LEDGERFLOW_DEFAULT_DUE_DAY", 5)
        self.LOG_LEVEL = os.getenv("LEDGERFLOW_LOG_LEVEL", "INFO").strip().upper()
        self.LOG_MAX_BYTES = _env_int("LEDGERFLOW_LOG_MAX_BYTES", 10 * 1024 * 1024)
        self.LOG_BACKUP_COUNT = _env_int("LEDGERFLOW_LOG_BACKUP_COUNT", 5)
        if self.LOG_LEVEL not in _LOG_LEVELS:
            raise ValueError(f"LEDGERFLOW_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}.")
        if self.CONFLICT_RETRIES < 1:
            raise ValueError("LEDGERFLOW_CONFLICT_RETRIES must be at least 1.")
        for name in ("DEFAULT_CLOSING_DAY", "DEFAULT_DUE_DAY"):
            if not 1 <= getattr(self, name) <= 31:
                raise ValueError(f"LEDGERFLOW_{name} must be between 1 and 31.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("LEDGERFLOW_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        """Construct the default SQLite URL inside the data directory."""

        return f"sqlite:///{self.DATA_DIR / self.DB_FILENAME}"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        if not self.is_sqlite:
            return {"pool_pre_ping": True}
        connect_args: dict[str, Any] = {
            "check_same_thread": False,
            "timeout": self.SQLITE_TIMEOUT,
        }
        return {"connect_args": connect_args}


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False


class TestConfig(BaseConfig):
    """Configuration for the test-suite: short lock timeout, no dev console noise."""

    __test__ = False  # keep pytest from collecting this as a test class

    DEBUG = False
    TESTING = True

    def __init__(self, database_url: str | None = None) -> None:
        super().__init__()
        if database_url:
            self.DATABASE_URL = database_url
        self.DEV_MODE = False
        self.SQLITE_TIMEOUT = 1
