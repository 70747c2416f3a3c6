from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _as_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return list(default)
    items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


@dataclass(slots=True)
class AppConfig:
    data_dir: Path
    db_path: Path
    uploads_dir: Path

    storage_backend: str
    embedding_dimension: int
    embedding_model_version: str
    max_upload_bytes: int

    allowed_origins: list[str]
    log_level: str

    @classmethod
    def from_env(cls) -> "AppConfig":
        root = Path(os.getenv("VCS_DATA_DIR", "data")).resolve()
        uploads = os.getenv("VCS_STORAGE_PATH")
        return cls(
            data_dir=root,
            db_path=root / "app.db",
            uploads_dir=Path(uploads).resolve() if uploads else root / "uploads",
            storage_backend=os.getenv("VCS_STORAGE_BACKEND", "sqlite").strip().lower(),
            embedding_dimension=int(
                os.getenv("VCS_EMBEDDING_DIMENSION", os.getenv("EMBEDDING_DIMENSION", "256"))
            ),
            embedding_model_version=os.getenv("VCS_EMBEDDING_MODEL_VERSION", "random-v1"),
            max_upload_bytes=max(1, int(os.getenv("VCS_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))),
            allowed_origins=_as_list(
                os.getenv("VCS_ALLOWED_ORIGINS"), ["http://localhost:3000"]
            ),
            log_level=os.getenv("VCS_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )

    def ensure_paths(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
