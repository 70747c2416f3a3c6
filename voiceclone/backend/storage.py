from __future__ import annotations

from typing import Any, Protocol

from voiceclone.backend.config import AppConfig
from voiceclone.backend.db import AppDatabase
from voiceclone.backend.memory_storage import MemoryStorage


class Storage(Protocol):
    def close(self) -> None: ...

    def init_schema(self) -> None: ...

    def insert_embedding_if_absent(self, embedding: dict[str, Any]) -> dict[str, Any]: ...

    def get_embedding(self, file_id: str) -> dict[str, Any] | None: ...

    def create_file(self, file: dict[str, Any]) -> None: ...

    def get_file(self, file_id: str) -> dict[str, Any] | None: ...

    def delete_file(self, file_id: str) -> int: ...

    def create_voice(self, voice: dict[str, Any]) -> None: ...

    def get_voice(self, voice_id: str) -> dict[str, Any] | None: ...

    def find_voice_by_file_and_model(self, file_id: str, model: str) -> dict[str, Any] | None: ...

    def list_voices(
        self,
        *,
        user_id: str | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]: ...

    def update_voice(self, voice_id: str, fields: dict[str, Any]) -> int: ...

    def delete_voice(self, voice_id: str) -> int: ...


def open_storage(config: AppConfig) -> Storage:
    backend = str(config.storage_backend or "").strip().lower()
    if backend == "sqlite":
        return AppDatabase(config.db_path)
    if backend == "memory":
        return MemoryStorage()
    raise ValueError(
        f"Unsupported storage backend: {config.storage_backend!r}. Expected 'sqlite' or 'memory'."
    )
