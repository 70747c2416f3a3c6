from __future__ import annotations

import threading
from pathlib import Path

import pytest

from voiceclone.backend.db import AppDatabase
from voiceclone.backend.memory_storage import MemoryStorage
from voiceclone.backend.services.embedding_service import EmbeddingService


@pytest.fixture(params=["sqlite", "memory"])
def storage(request, tmp_path: Path):
    if request.param == "sqlite":
        store = AppDatabase(tmp_path / "app.db")
    else:
        store = MemoryStorage()
    store.init_schema()
    yield store
    store.close()


def test_save_then_get(storage):
    svc = EmbeddingService(storage, dimension=4)
    result = svc.generate("file-123")
    saved = svc.save("file-123", result.vector, result.vector_hash)

    assert saved.id == "746c80d62e27ed64ffe43d21f88ca6b7"
    assert saved.file_id == "file-123"
    assert saved.dimension == 4
    assert saved.model_version == "random-v1"
    assert saved.vector == result.vector

    got = svc.get("file-123")
    assert got == saved


def test_get_missing_returns_none(storage):
    assert EmbeddingService(storage).get("nope") is None


def test_second_save_returns_first_record(storage):
    svc = EmbeddingService(storage, dimension=4)
    first = svc.save("file-x", [1.0, 0.0, 0.0, 0.0], "hash-one")
    second = svc.save("file-x", [0.0, 1.0], "hash-two", model_version="other-v2")

    assert second == first
    assert second.vector == [1.0, 0.0, 0.0, 0.0]
    assert second.vector_hash == "hash-one"
    assert second.model_version == "random-v1"
    assert svc.get("file-x") == first


def test_custom_model_version_is_recorded(storage):
    svc = EmbeddingService(storage, dimension=4, model_version="random-v1")
    saved = svc.save("file-y", [0.5, 0.5, 0.5, 0.5], "h", model_version="random-v2")
    assert saved.model_version == "random-v2"


def test_concurrent_saves_store_one_record(storage):
    svc = EmbeddingService(storage, dimension=8)
    barrier = threading.Barrier(8)
    results = []
    errors = []

    def _worker(i: int) -> None:
        try:
            barrier.wait()
            results.append(svc.save("race", [float(i)] * 8, f"hash-{i}"))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len({r.id for r in results}) == 1
    assert len({r.vector_hash for r in results}) == 1
    assert svc.get("race") == results[0]


def test_sqlite_embeddings_survive_reopen(tmp_path: Path):
    db = AppDatabase(tmp_path / "app.db")
    db.init_schema()
    svc = EmbeddingService(db, dimension=256)
    result = svc.generate("persisted")
    saved = svc.save("persisted", result.vector, result.vector_hash)
    db.close()

    reopened = AppDatabase(tmp_path / "app.db")
    reopened.init_schema()
    got = EmbeddingService(reopened).get("persisted")
    assert got is not None
    assert got.vector == result.vector
    assert got.created_at == saved.created_at
    reopened.close()


def test_memory_store_returns_copies():
    store = MemoryStorage()
    svc = EmbeddingService(store, dimension=2)
    saved = svc.save("copy", [0.6, 0.8], "h")
    row = store.get_embedding("copy")
    row["vector"].append(9.9)
    assert svc.get("copy") == saved


def test_empty_model_version_is_recorded(storage):
    svc = EmbeddingService(storage, dimension=2, model_version="random-v1")
    saved = svc.save("file-z", [0.6, 0.8], "h", model_version="")
    assert saved.model_version == ""
    assert svc.get("file-z").model_version == ""
