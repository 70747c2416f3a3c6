from __future__ import annotations

from pathlib import Path

import pytest

from voiceclone.backend.config import AppConfig


@pytest.fixture
def app_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.setenv("VCS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("VCS_STORAGE_PATH", raising=False)
    monkeypatch.delenv("VCS_STORAGE_BACKEND", raising=False)
    monkeypatch.delenv("VCS_EMBEDDING_MODEL_VERSION", raising=False)
    monkeypatch.delenv("VCS_EMBEDDING_DIMENSION", raising=False)
    monkeypatch.delenv("EMBEDDING_DIMENSION", raising=False)
    cfg = AppConfig.from_env()
    cfg.ensure_paths()
    return cfg
