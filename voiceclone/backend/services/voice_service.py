from __future__ import annotations

import logging
import threading
import uuid
from typing import Any

from voiceclone.backend.errors import NotFoundError
from voiceclone.backend.services.embedding_service import EmbeddingService
from voiceclone.backend.services.file_service import FileService
from voiceclone.backend.storage import Storage
from voiceclone.backend.types import VoiceListResponse, VoiceMeta, utc_now_iso

logger = logging.getLogger("voiceclone.voices")


class VoiceService:
    MAX_PAGE_SIZE = 100

    def __init__(
        self,
        storage: Storage,
        files: FileService,
        embeddings: EmbeddingService,
    ) -> None:
        self.storage = storage
        self.files = files
        self.embeddings = embeddings
        self._create_lock = threading.Lock()

    @staticmethod
    def _normalize_text(value: str | None) -> str | None:
        text = " ".join(str(value or "").split()).strip()
        return text or None

    def create_voice(
        self,
        *,
        user_id: str,
        file_id: str,
        model: str,
        name: str | None = None,
        text: str | None = None,
        sample_text: str | None = None,
    ) -> VoiceMeta:
        with self._create_lock:
            existing = self.storage.find_voice_by_file_and_model(file_id, model)
            if existing is not None:
                return VoiceMeta(**existing)

            file = self.files.get_file(file_id)
            if file is None:
                raise NotFoundError(f"File not found: {file_id}")

            result, embedding = self.embeddings.generate_and_save(file_id)

            now = utc_now_iso()
            voice = VoiceMeta(
                id=uuid.uuid4().hex,
                user_id=user_id,
                name=self._normalize_text(name),
                provider_voice_id=f"local-{uuid.uuid4()}",
                file_id=file_id,
                model=model,
                text=self._normalize_text(text),
                sample_text=self._normalize_text(sample_text),
                sample_audio_path=file.file_path,
                embedding_hash=result.vector_hash,
                metadata={"type": model, "embedding_id": embedding.id},
                created_at=now,
                updated_at=now,
            )
            self.storage.create_voice(voice.model_dump())
        logger.info("voice created: id=%s file_id=%s model=%s", voice.id, file_id, model)
        return voice

    def get_voice(self, voice_id: str) -> VoiceMeta | None:
        row = self.storage.get_voice(voice_id)
        if row is None:
            return None
        return VoiceMeta(**row)

    def list_voices(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        user_id: str | None = None,
    ) -> VoiceListResponse:
        page = max(1, int(page))
        limit = max(1, min(self.MAX_PAGE_SIZE, int(limit)))
        rows, total = self.storage.list_voices(
            user_id=user_id or None,
            search=(search or "").strip() or None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return VoiceListResponse(
            voices=[VoiceMeta(**row) for row in rows],
            total=total,
            page=page,
            limit=limit,
        )

    def update_voice(
        self,
        voice_id: str,
        *,
        name: str | None = None,
        text: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> VoiceMeta | None:
        if self.get_voice(voice_id) is None:
            return None
        fields: dict[str, Any] = {"updated_at": utc_now_iso()}
        if name is not None:
            fields["name"] = self._normalize_text(name)
        if text is not None:
            fields["text"] = self._normalize_text(text)
        if metadata is not None:
            fields["metadata"] = metadata
        if not self.storage.update_voice(voice_id, fields):
            return None
        return self.get_voice(voice_id)

    def delete_voice(self, voice_id: str) -> bool:
        return self.storage.delete_voice(voice_id) > 0
