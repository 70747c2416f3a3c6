from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from voiceclone.backend.errors import StorageError

_VOICE_COLUMNS = (
    "id",
    "user_id",
    "name",
    "provider_voice_id",
    "file_id",
    "model",
    "text",
    "sample_text",
    "sample_audio_path",
    "embedding_hash",
    "metadata",
    "created_at",
    "updated_at",
)
_VOICE_UPDATABLE = {"name", "text", "metadata", "updated_at"}


def _py_lower(value: str | None) -> str | None:
    return None if value is None else str(value).lower()


class AppDatabase:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            # SQLite LOWER() only folds ASCII; match Python str.lower().
            conn.create_function("py_lower", 1, _py_lower, deterministic=True)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def init_schema(self) -> None:
        with self._lock:
            if self._conn is None:
                self._conn = self._connect()
        with self._guard(), self._lock, self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS files (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    file_path TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    duration REAL NOT NULL DEFAULT 0,
                    format TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS embeddings (
                    id TEXT PRIMARY KEY,
                    file_id TEXT NOT NULL UNIQUE,
                    vector TEXT NOT NULL,
                    vector_hash TEXT NOT NULL,
                    dimension INTEGER NOT NULL,
                    model_version TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS voices (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT,
                    provider_voice_id TEXT NOT NULL,
                    file_id TEXT NOT NULL,
                    model TEXT NOT NULL,
                    text TEXT,
                    sample_text TEXT,
                    sample_audio_path TEXT,
                    embedding_hash TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (file_id, model)
                );

                CREATE INDEX IF NOT EXISTS idx_voices_user ON voices(user_id);
                """
            )

    def insert_embedding_if_absent(self, embedding: dict[str, Any]) -> dict[str, Any]:
        """Insert unless a row for the same file_id exists; return the stored row."""
        with self._guard(), self._lock:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO embeddings(
                        id, file_id, vector, vector_hash, dimension, model_version, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(file_id) DO NOTHING
                    """,
                    (
                        embedding["id"],
                        embedding["file_id"],
                        json.dumps(embedding["vector"]),
                        embedding["vector_hash"],
                        embedding["dimension"],
                        embedding["model_version"],
                        embedding["created_at"],
                    ),
                )
            row = self._conn.execute(
                "SELECT * FROM embeddings WHERE file_id = ?", (embedding["file_id"],)
            ).fetchone()
        if row is None:
            raise StorageError(f"Embedding row vanished after insert: {embedding['file_id']}")
        return self._embedding_row(row)

    def get_embedding(self, file_id: str) -> dict[str, Any] | None:
        with self._guard(), self._lock:
            row = self._conn.execute(
                "SELECT * FROM embeddings WHERE file_id = ?", (file_id,)
            ).fetchone()
        return None if row is None else self._embedding_row(row)

    def create_file(self, file: dict[str, Any]) -> None:
        with self._guard(), self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO files(
                    id, user_id, filename, file_path, file_size, duration, format, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    file["id"],
                    file["user_id"],
                    file["filename"],
                    file["file_path"],
                    file["file_size"],
                    file.get("duration", 0.0),
                    file["format"],
                    file["created_at"],
                ),
            )

    def get_file(self, file_id: str) -> dict[str, Any] | None:
        with self._guard(), self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE id = ?", (file_id,)
            ).fetchone()
        return None if row is None else dict(row)

    def delete_file(self, file_id: str) -> int:
        with self._guard(), self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM files WHERE id = ?", (file_id,))
        return int(cur.rowcount)

    def create_voice(self, voice: dict[str, Any]) -> None:
        placeholders = ", ".join("?" for _ in _VOICE_COLUMNS)
        values = [voice.get(column) for column in _VOICE_COLUMNS]
        values[_VOICE_COLUMNS.index("metadata")] = json.dumps(
            voice.get("metadata") or {}, ensure_ascii=True
        )
        with self._guard(), self._lock, self._conn:
            self._conn.execute(
                f"INSERT INTO voices({', '.join(_VOICE_COLUMNS)}) VALUES ({placeholders})",
                values,
            )

    def get_voice(self, voice_id: str) -> dict[str, Any] | None:
        with self._guard(), self._lock:
            row = self._conn.execute(
                "SELECT * FROM voices WHERE id = ?", (voice_id,)
            ).fetchone()
        return None if row is None else self._voice_row(row)

    def find_voice_by_file_and_model(self, file_id: str, model: str) -> dict[str, Any] | None:
        with self._guard(), self._lock:
            row = self._conn.execute(
                "SELECT * FROM voices WHERE file_id = ? AND model = ?", (file_id, model)
            ).fetchone()
        return None if row is None else self._voice_row(row)

    def list_voices(
        self,
        *,
        user_id: str | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        clauses: list[str] = []
        params: list[Any] = []
        if user_id:
            clauses.append("user_id = ?")
            params.append(user_id)
        if search:
            needle = search.lower()
            clauses.append(
                "(instr(py_lower(id), ?) > 0"
                " OR instr(py_lower(provider_voice_id), ?) > 0"
                " OR instr(py_lower(COALESCE(name, '')), ?) > 0)"
            )
            params.extend([needle, needle, needle])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._guard(), self._lock:
            total = self._conn.execute(
                f"SELECT COUNT(*) AS n FROM voices {where}", params
            ).fetchone()["n"]
            rows = self._conn.execute(
                f"SELECT * FROM voices {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        return [self._voice_row(row) for row in rows], int(total)

    def update_voice(self, voice_id: str, fields: dict[str, Any]) -> int:
        unknown = set(fields) - _VOICE_UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported voice fields: {sorted(unknown)}")
        if not fields:
            return 0
        values: list[Any] = []
        for key, value in fields.items():
            if key == "metadata":
                value = json.dumps(value or {}, ensure_ascii=True)
            values.append(value)
        assignments = ", ".join(f"{key} = ?" for key in fields)
        with self._guard(), self._lock, self._conn:
            cur = self._conn.execute(
                f"UPDATE voices SET {assignments} WHERE id = ?", [*values, voice_id]
            )
        return int(cur.rowcount)

    def delete_voice(self, voice_id: str) -> int:
        with self._guard(), self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM voices WHERE id = ?", (voice_id,))
        return int(cur.rowcount)

    @staticmethod
    def _embedding_row(row: sqlite3.Row) -> dict[str, Any]:
        out = dict(row)
        out["vector"] = json.loads(out["vector"])
        return out

    @staticmethod
    def _voice_row(row: sqlite3.Row) -> dict[str, Any]:
        out = dict(row)
        out["metadata"] = json.loads(out["metadata"] or "{}")
        return out
