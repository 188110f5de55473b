"""Tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from ledgerflow.config import BaseConfig, TestConfig


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("LEDGERFLOW_DATA_DIR", str(tmp_path / "data"))
    for name in (
        "LEDGERFLOW_DATABASE_URL",
        "LEDGERFLOW_DEV_MODE",
        "LEDGERFLOW_SQLITE_TIMEOUT",
        "LEDGERFLOW_CONFLICT_RETRIES",
        "LEDGERFLOW_DEFAULT_CLOSING_DAY",
        "LEDGERFLOW_DEFAULT_DUE_DAY",
        "LEDGERFLOW_LOG_LEVEL",
        "LEDGERFLOW_LOG_MAX_BYTES",
        "LEDGERFLOW_LOG_BACKUP_COUNT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = BaseConfig()
    assert config.DATA_DIR == (tmp_path / "data").resolve()
    assert config.DATA_DIR.is_dir()
    assert config.DATABASE_URL == f"sqlite:///{config.DATA_DIR / 'ledgerflow.db'}"
    assert config.DEV_MODE is True
    assert (config.DEFAULT_CLOSING_DAY, config.DEFAULT_DUE_DAY) == (15, 5)
    assert config.CONFLICT_RETRIES == 3
    assert config.LOG_LEVEL == "INFO"


def test_sqlite_engine_options(monkeypatch):
    monkeypatch.setenv("LEDGERFLOW_SQLITE_TIMEOUT", "7")
    options = BaseConfig().sqlalchemy_engine_options()
    assert options == {"connect_args": {"check_same_thread": False, "timeout": 7}}


def test_non_sqlite_url_uses_pre_ping(monkeypatch):
    monkeypatch.setenv("LEDGERFLOW_DATABASE_URL", "postgresql://ledger@localhost/ledger")
    config = BaseConfig()
    assert not config.is_sqlite
    assert config.sqlalchemy_engine_options() == {"pool_pre_ping": True}


@pytest.mark.parametrize("value", ["no", "0", "false", "off"])
def test_dev_mode_flag(monkeypatch, value):
    monkeypatch.setenv("LEDGERFLOW_DEV_MODE", value)
    assert BaseConfig().DEV_MODE is False


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LEDGERFLOW_SQLITE_TIMEOUT", "soon"),
        ("LEDGERFLOW_CONFLICT_RETRIES", "0"),
        ("LEDGERFLOW_DEFAULT_CLOSING_DAY", "32"),
        ("LEDGERFLOW_DEFAULT_DUE_DAY", "0"),
        ("LEDGERFLOW_LOG_LEVEL", "chatty"),
        ("LEDGERFLOW_LOG_BACKUP_COUNT", "many"),
    ],
)
def test_invalid_values_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        BaseConfig()


def test_test_config_overrides():
    config = TestConfig(database_url="sqlite:///:memory:")
    assert config.DATABASE_URL == "sqlite:///:memory:"
    assert config.DEV_MODE is False
    assert config.SQLITE_TIMEOUT == 1


def test_log_level_is_normalized(monkeypatch):
    monkeypatch.setenv("LEDGERFLOW_LOG_LEVEL", " debug ")
    assert BaseConfig().LOG_LEVEL == "DEBUG"
