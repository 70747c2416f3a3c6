from __future__ import annotations

from pathlib import Path

import pytest

from voiceclone.backend.config import AppConfig
from voiceclone.backend.db import AppDatabase
from voiceclone.backend.errors import NotFoundError
from voiceclone.backend.services.embedding_service import EmbeddingService
from voiceclone.backend.services.file_service import FileService
from voiceclone.backend.services.voice_service import VoiceService


def _build_service(cfg: AppConfig) -> VoiceService:
    db = AppDatabase(cfg.db_path)
    db.init_schema()
    embeddings = EmbeddingService(db, dimension=cfg.embedding_dimension)
    return VoiceService(db, FileService(cfg, db), embeddings)


def _upload(svc: VoiceService, user_id: str = "u1") -> str:
    meta = svc.files.upload_file(user_id=user_id, filename="ref.webm", payload=b"recorded")
    return meta.id


def test_create_voice_stamps_embedding_hash(app_config: AppConfig):
    svc = _build_service(app_config)
    file_id = _upload(svc)

    voice = svc.create_voice(user_id="u1", file_id=file_id, model="cosyvoice-v2", name=" My  Voice ")

    expected = svc.embeddings.generate(file_id)
    assert voice.embedding_hash == expected.vector_hash
    assert voice.name == "My Voice"
    assert voice.provider_voice_id.startswith("local-")
    assert voice.sample_audio_path == svc.files.get_file(file_id).file_path

    stored = svc.embeddings.get(file_id)
    assert stored is not None
    assert stored.vector_hash == voice.embedding_hash
    assert stored.dimension == 256
    assert voice.metadata == {"type": "cosyvoice-v2", "embedding_id": stored.id}


def test_create_voice_is_idempotent_per_file_and_model(app_config: AppConfig):
    svc = _build_service(app_config)
    file_id = _upload(svc)

    first = svc.create_voice(user_id="u1", file_id=file_id, model="cosyvoice-v2")
    again = svc.create_voice(user_id="u1", file_id=file_id, model="cosyvoice-v2", name="ignored")
    other = svc.create_voice(user_id="u1", file_id=file_id, model="step-tts-mini")

    assert again == first
    assert other.id != first.id
    assert other.embedding_hash == first.embedding_hash
    assert svc.list_voices().total == 2


def test_create_voice_requires_existing_file(app_config: AppConfig):
    svc = _build_service(app_config)
    with pytest.raises(NotFoundError, match="File not found"):
        svc.create_voice(user_id="u1", file_id="missing", model="cosyvoice-v2")
    assert svc.embeddings.get("missing") is None


def test_list_voices_paging_and_search(app_config: AppConfig):
    svc = _build_service(app_config)
    for i in range(5):
        svc.create_voice(
            user_id="u1" if i < 3 else "u2",
            file_id=_upload(svc),
            model="cosyvoice-v2",
            name=f"voice-{i}",
        )

    page = svc.list_voices(page=1, limit=2)
    assert page.total == 5
    assert len(page.voices) == 2
    assert page.limit == 2

    last = svc.list_voices(page=3, limit=2)
    assert len(last.voices) == 1

    assert svc.list_voices(user_id="u2").total == 2
    found = svc.list_voices(search="VOICE-4")
    assert [v.name for v in found.voices] == ["voice-4"]

    clamped = svc.list_voices(page=0, limit=10_000)
    assert clamped.page == 1
    assert clamped.limit == svc.MAX_PAGE_SIZE


def test_update_voice(app_config: AppConfig):
    svc = _build_service(app_config)
    voice = svc.create_voice(user_id="u1", file_id=_upload(svc), model="cosyvoice-v2")

    updated = svc.update_voice(voice.id, name="renamed", metadata={"tag": "x"})
    assert updated is not None
    assert updated.name == "renamed"
    assert updated.metadata == {"tag": "x"}
    assert updated.embedding_hash == voice.embedding_hash
    assert updated.created_at == voice.created_at
    assert updated.updated_at >= voice.updated_at

    assert svc.update_voice("missing", name="x") is None


def test_delete_voice_keeps_embedding(app_config: AppConfig):
    svc = _build_service(app_config)
    file_id = _upload(svc)
    voice = svc.create_voice(user_id="u1", file_id=file_id, model="cosyvoice-v2")

    assert svc.delete_voice(voice.id) is True
    assert svc.get_voice(voice.id) is None
    assert svc.delete_voice(voice.id) is False
    assert svc.embeddings.get(file_id) is not None
    assert Path(svc.files.get_file(file_id).file_path).exists()
