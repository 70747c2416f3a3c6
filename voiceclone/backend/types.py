from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    storage_backend: str
    embedding_dimension: int
    embedding_model_version: str
    timestamp: str = Field(default_factory=utc_now_iso)
    detail: str


class EmbeddingResult(BaseModel):
    vector: list[float]
    vector_hash: str


class Embedding(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())
    id: str
    file_id: str
    vector: list[float]
    vector_hash: str
    dimension: int
    model_version: str
    created_at: str


class EmbeddingGenerateRequest(BaseModel):
    file_id: str = Field(min_length=1, max_length=256)


class EmbeddingGenerateResponse(BaseModel):
    embedding_id: str
    vector: list[float]
    vector_hash: str
    dimension: int


class FileMeta(BaseModel):
    id: str
    user_id: str
    filename: str
    file_path: str
    file_size: int
    duration: float = 0.0
    format: str
    created_at: str


class VoiceMeta(BaseModel):
    id: str
    user_id: str
    name: str | None = None
    provider_voice_id: str
    file_id: str
    model: str
    text: str | None = None
    sample_text: str | None = None
    sample_audio_path: str | None = None
    embedding_hash: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str


class VoiceCreateRequest(BaseModel):
    user_id: str = Field(default="anonymous", min_length=1, max_length=128)
    file_id: str = Field(min_length=1, max_length=256)
    model: str = Field(default="cosyvoice-v2", min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=64)
    text: str | None = Field(default=None, max_length=1024)
    sample_text: str | None = Field(default=None, max_length=1024)


class VoiceUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=64)
    text: str | None = Field(default=None, max_length=1024)
    metadata: dict[str, Any] | None = None


class VoiceListResponse(BaseModel):
    voices: list[VoiceMeta]
    total: int
    page: int
    limit: int
