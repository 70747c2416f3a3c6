from __future__ import annotations

import copy
import threading
from typing import Any

from voiceclone.backend.errors import StorageError

_VOICE_UPDATABLE = {"name", "text", "metadata", "updated_at"}


class MemoryStorage:
    """Process-local storage with the same surface as ``AppDatabase``.

    Rows are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._files: dict[str, dict[str, Any]] = {}
        self._embeddings: dict[str, dict[str, Any]] = {}
        self._voices: dict[str, dict[str, Any]] = {}
        self._voice_seq = 0

    def close(self) -> None:
        return None

    def init_schema(self) -> None:
        return None

    def insert_embedding_if_absent(self, embedding: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            stored = self._embeddings.setdefault(embedding["file_id"], copy.deepcopy(embedding))
            return copy.deepcopy(stored)

    def get_embedding(self, file_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._embeddings.get(file_id)
            return None if row is None else copy.deepcopy(row)

    def create_file(self, file: dict[str, Any]) -> None:
        with self._lock:
            if file["id"] in self._files:
                raise StorageError(f"File already exists: {file['id']}")
            self._files[file["id"]] = copy.deepcopy(file)

    def get_file(self, file_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._files.get(file_id)
            return None if row is None else copy.deepcopy(row)

    def delete_file(self, file_id: str) -> int:
        with self._lock:
            return 0 if self._files.pop(file_id, None) is None else 1

    def create_voice(self, voice: dict[str, Any]) -> None:
        with self._lock:
            if voice["id"] in self._voices:
                raise StorageError(f"Voice already exists: {voice['id']}")
            if self.find_voice_by_file_and_model(voice["file_id"], voice["model"]) is not None:
                raise StorageError(
                    f"Voice already exists for file {voice['file_id']} and model {voice['model']}"
                )
            row = copy.deepcopy(voice)
            row.setdefault("metadata", {})
            self._voice_seq += 1
            row["_seq"] = self._voice_seq
            self._voices[voice["id"]] = row

    def get_voice(self, voice_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._voices.get(voice_id)
            return None if row is None else self._public(row)

    def find_voice_by_file_and_model(self, file_id: str, model: str) -> dict[str, Any] | None:
        with self._lock:
            for row in self._voices.values():
                if row["file_id"] == file_id and row["model"] == model:
                    return self._public(row)
        return None

    def list_voices(
        self,
        *,
        user_id: str | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        with self._lock:
            rows = list(self._voices.values())
            if user_id:
                rows = [row for row in rows if row["user_id"] == user_id]
            if search:
                needle = search.lower()
                rows = [
                    row
                    for row in rows
                    if needle in row["id"].lower()
                    or needle in row["provider_voice_id"].lower()
                    or needle in (row.get("name") or "").lower()
                ]
            rows.sort(key=lambda row: (row["created_at"], row["_seq"]), reverse=True)
            total = len(rows)
            page = rows[offset : offset + limit]
            return [self._public(row) for row in page], total

    def update_voice(self, voice_id: str, fields: dict[str, Any]) -> int:
        unknown = set(fields) - _VOICE_UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported voice fields: {sorted(unknown)}")
        with self._lock:
            row = self._voices.get(voice_id)
            if row is None or not fields:
                return 0
            row.update(copy.deepcopy(fields))
            return 1

    def delete_voice(self, voice_id: str) -> int:
        with self._lock:
            return 0 if self._voices.pop(voice_id, None) is None else 1

    @staticmethod
    def _public(row: dict[str, Any]) -> dict[str, Any]:
        out = copy.deepcopy(row)
        out.pop("_seq", None)
        return out
