from __future__ import annotations

import pytest

from backend.learning.config import load_learning_config


def test_defaults_to_memory_without_dsn(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("LEARNING_DATABASE_URL", raising=False)
    cfg = load_learning_config()
    assert cfg.repo_backend == "memory"
    assert cfg.database_url is None
    assert cfg.content_file is None


def test_dsn_selects_db_and_learning_url_wins(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/app")
    monkeypatch.setenv("LEARNING_DATABASE_URL", "postgresql://learning@db/learning")
    cfg = load_learning_config()
    assert cfg.repo_backend == "db"
    assert cfg.database_url == "postgresql://learning@db/learning"


def test_explicit_memory_backend_with_dsn(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db/app")
    monkeypatch.setenv("LEARNING_REPO_BACKEND", "MEMORY")
    assert load_learning_config().repo_backend == "memory"


def test_invalid_backend(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEARNING_REPO_BACKEND", "sqlite")
    with pytest.raises(ValueError):
        load_learning_config()


def test_db_backend_requires_dsn(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("LEARNING_DATABASE_URL", raising=False)
    monkeypatch.setenv("LEARNING_REPO_BACKEND", "db")
    with pytest.raises(ValueError):
        load_learning_config()


def test_content_file_must_exist(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("LEARNING_CONTENT_FILE", str(tmp_path / "missing.yaml"))
    with pytest.raises(ValueError):
        load_learning_config()
