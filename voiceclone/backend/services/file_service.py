from __future__ import annotations

import logging
import uuid
from pathlib import Path

import numpy as np

from voiceclone.backend.config import AppConfig
from voiceclone.backend.errors import ClientInputError
from voiceclone.backend.storage import Storage
from voiceclone.backend.types import FileMeta, utc_now_iso

logger = logging.getLogger("voiceclone.files")


class FileService:
    ALLOWED_SUFFIX = {".wav", ".mp3", ".m4a", ".webm", ".ogg", ".flac"}

    def __init__(self, config: AppConfig, storage: Storage) -> None:
        self.config = config
        self.storage = storage

    def upload_file(self, *, user_id: str, filename: str, payload: bytes) -> FileMeta:
        user = " ".join(str(user_id or "").split()).strip()
        if not user:
            raise ClientInputError("user_id is required.")
        suffix = Path(filename or "").suffix.lower() or ".wav"
        if suffix not in self.ALLOWED_SUFFIX:
            allowed = ", ".join(sorted(self.ALLOWED_SUFFIX))
            raise ClientInputError(f"Unsupported audio format: {suffix}. Allowed: {allowed}")
        if len(payload) == 0:
            raise ClientInputError("Uploaded audio file is empty.")
        if len(payload) > self.config.max_upload_bytes:
            raise ClientInputError(
                f"Audio file too large: {len(payload)} bytes. Max: {self.config.max_upload_bytes}."
            )

        file_id = uuid.uuid4().hex
        self.config.uploads_dir.mkdir(parents=True, exist_ok=True)
        path = self.config.uploads_dir / f"{file_id}{suffix}"
        path.write_bytes(payload)

        meta = FileMeta(
            id=file_id,
            user_id=user,
            filename=Path(filename or f"upload{suffix}").name,
            file_path=str(path),
            file_size=len(payload),
            duration=self._probe_duration(path),
            format=suffix.lstrip("."),
            created_at=utc_now_iso(),
        )
        try:
            self.storage.create_file(meta.model_dump())
        except Exception:
            path.unlink(missing_ok=True)
            raise
        logger.info("file uploaded: id=%s size=%d duration=%.2fs", file_id, meta.file_size, meta.duration)
        return meta

    def get_file(self, file_id: str) -> FileMeta | None:
        row = self.storage.get_file(file_id)
        if row is None:
            return None
        return FileMeta(**row)

    def delete_file(self, file_id: str) -> bool:
        meta = self.get_file(file_id)
        if meta is None:
            return False
        # Record before bytes: a failed row delete must leave the audio in place.
        deleted = self.storage.delete_file(file_id) > 0
        try:
            Path(meta.file_path).unlink()
        except FileNotFoundError:
            logger.warning("stored audio already missing: %s", meta.file_path)
        return deleted

    def _probe_duration(self, path: Path) -> float:
        try:
            import soundfile as sf

            info = sf.info(str(path))
            if info.samplerate > 0:
                return float(info.frames) / float(info.samplerate)
        except Exception:
            pass
        try:
            import librosa

            wav, sr = librosa.load(str(path), sr=None, mono=True)
            if int(sr) > 0:
                return float(len(np.asarray(wav))) / float(sr)
        except Exception as exc:
            logger.warning("could not decode uploaded audio %s: %s", path.name, exc)
        return 0.0
