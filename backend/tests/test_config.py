"""Tests for environment-driven settings."""

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from config import DEFAULT_CLONE_TIMEOUT, DEFAULT_DATABASE_URL, DEFAULT_POOL_SIZE, Settings, load_settings

ENV_VARS = [
    "DATABASE_URL",
    "DATABASE_POOL_SIZE",
    "SECRET_KEY",
    "GIT_REMOTE_BASE_URL",
    "CATALOG_WORKSPACE_ROOT",
    "GIT_CLONE_TIMEOUT",
    "INGEST_TIMEOUT",
    "LOG_LEVEL",
    "CORS_ORIGINS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_env_unset():
    settings = load_settings()

    assert settings == Settings()
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.secret_key == ""
    assert settings.remote_base_url == "https://github.com"
    assert settings.clone_timeout == DEFAULT_CLONE_TIMEOUT


def test_values_read_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", "postgresql://catalog@db/catalog")
    monkeypatch.setenv("DATABASE_POOL_SIZE", "12")
    monkeypatch.setenv("SECRET_KEY", "s3cret")
    monkeypatch.setenv("GIT_REMOTE_BASE_URL", "https://git.example.com/")
    monkeypatch.setenv("CATALOG_WORKSPACE_ROOT", str(tmp_path))
    monkeypatch.setenv("GIT_CLONE_TIMEOUT", "45")
    monkeypatch.setenv("INGEST_TIMEOUT", "90.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.database_url == "postgresql://catalog@db/catalog"
    assert settings.database_pool_size == 12
    assert settings.secret_key == "s3cret"
    assert settings.remote_base_url == "https://git.example.com"
    assert settings.workspace_root == Path(tmp_path)
    assert settings.clone_timeout == 45.0
    assert settings.ingest_timeout == 90.5
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("raw", ["abc", "0", "-3", "  "])
def test_invalid_timeouts_fall_back(monkeypatch, raw):
    monkeypatch.setenv("GIT_CLONE_TIMEOUT", raw)
    monkeypatch.setenv("DATABASE_POOL_SIZE", raw)

    settings = load_settings()

    assert settings.clone_timeout == DEFAULT_CLONE_TIMEOUT
    assert settings.database_pool_size == DEFAULT_POOL_SIZE


def test_invalid_log_level_falls_back(monkeypatch, caplog):
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    with caplog.at_level(logging.WARNING, logger="config"):
        settings = load_settings()

    assert settings.log_level == "INFO"
    assert "LOG_LEVEL" in caplog.text


def test_cors_origins_from_env(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173, http://127.0.0.1:5173,")

    assert load_settings().cors_origins == ("http://localhost:5173", "http://127.0.0.1:5173")


def test_invalid_number_logs_env_name(monkeypatch, caplog):
    monkeypatch.setenv("GIT_CLONE_TIMEOUT", "soon")

    with caplog.at_level(logging.WARNING, logger="config"):
        settings = load_settings()

    assert settings.clone_timeout == DEFAULT_CLONE_TIMEOUT
    assert "GIT_CLONE_TIMEOUT" in caplog.text


def test_settings_accept_field_names():
    settings = Settings(secret_key="s3cret", clone_timeout=5, workspace_root="/srv/catalog")

    assert settings.secret_key == "s3cret"
    assert settings.clone_timeout == 5.0
    assert settings.workspace_root == Path("/srv/catalog")


def test_settings_are_frozen():
    settings = load_settings()

    with pytest.raises(ValidationError):
        settings.secret_key = "changed"
