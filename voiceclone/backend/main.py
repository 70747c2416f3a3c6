from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from voiceclone.backend.config import AppConfig
from voiceclone.backend.errors import ClientInputError, NotFoundError
from voiceclone.backend.services.embedding_service import EmbeddingService
from voiceclone.backend.services.file_service import FileService
from voiceclone.backend.services.voice_service import VoiceService
from voiceclone.backend.storage import Storage, open_storage
from voiceclone.backend.types import (
    Embedding,
    EmbeddingGenerateRequest,
    EmbeddingGenerateResponse,
    FileMeta,
    HealthResponse,
    VoiceCreateRequest,
    VoiceListResponse,
    VoiceMeta,
    VoiceUpdateRequest,
)

logger = logging.getLogger("voiceclone")


@dataclass(slots=True)
class AppServices:
    config: AppConfig
    storage: Storage
    embeddings: EmbeddingService
    files: FileService
    voices: VoiceService


def build_services(config: AppConfig) -> AppServices:
    config.ensure_paths()
    storage = open_storage(config)
    embeddings = EmbeddingService(
        storage,
        dimension=config.embedding_dimension,
        model_version=config.embedding_model_version,
    )
    files = FileService(config, storage)
    voices = VoiceService(storage, files, embeddings)
    return AppServices(
        config=config,
        storage=storage,
        embeddings=embeddings,
        files=files,
        voices=voices,
    )


def _services(request: Request) -> AppServices:
    return request.app.state.services


def _server_error(action: str, exc: Exception) -> HTTPException:
    logger.exception("failed to %s", action)
    return HTTPException(status_code=500, detail=f"Failed to {action}: {exc}")


def create_app(config: AppConfig | None = None) -> FastAPI:
    config = config or AppConfig.from_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
    services = build_services(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        services.storage.init_schema()
        logger.info(
            "storage ready: backend=%s embedding_dimension=%d",
            config.storage_backend,
            config.embedding_dimension,
        )
        yield
        services.storage.close()

    app = FastAPI(title="Voice Clone Studio", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/v1/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        cfg = _services(request).config
        if cfg.embedding_dimension < 1:
            status = "degraded"
            detail = f"invalid embedding dimension: {cfg.embedding_dimension}"
        else:
            status = "ok"
            detail = "all subsystems are ready"
        return HealthResponse(
            status=status,
            storage_backend=cfg.storage_backend,
            embedding_dimension=cfg.embedding_dimension,
            embedding_model_version=cfg.embedding_model_version,
            detail=detail,
        )

    @app.post("/api/v1/files", response_model=FileMeta)
    async def upload_file(
        request: Request,
        user_id: str = Form("anonymous"),
        audio_file: UploadFile = File(...),
    ) -> FileMeta:
        svc = _services(request)
        try:
            payload = await audio_file.read()
            return await run_in_threadpool(
                svc.files.upload_file,
                user_id=user_id,
                filename=audio_file.filename or "upload.wav",
                payload=payload,
            )
        except ClientInputError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            raise _server_error("upload file", exc) from exc

    @app.get("/api/v1/files/{file_id}", response_model=FileMeta)
    async def get_file(request: Request, file_id: str) -> FileMeta:
        try:
            meta = await run_in_threadpool(_services(request).files.get_file, file_id)
        except Exception as exc:
            raise _server_error("get file", exc) from exc
        if meta is None:
            raise HTTPException(status_code=404, detail=f"File not found: {file_id}")
        return meta

    @app.delete("/api/v1/files/{file_id}")
    async def delete_file(request: Request, file_id: str):
        try:
            deleted = await run_in_threadpool(_services(request).files.delete_file, file_id)
        except Exception as exc:
            raise _server_error("delete file", exc) from exc
        if not deleted:
            raise HTTPException(status_code=404, detail=f"File not found: {file_id}")
        return {"ok": True, "file_id": file_id}

    @app.post("/api/v1/embeddings/generate", response_model=EmbeddingGenerateResponse)
    async def generate_embedding(
        request: Request, req: EmbeddingGenerateRequest
    ) -> EmbeddingGenerateResponse:
        svc = _services(request)
        try:
            result, embedding = await run_in_threadpool(
                svc.embeddings.generate_and_save, req.file_id
            )
        except ClientInputError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            raise _server_error("generate embedding", exc) from exc
        return EmbeddingGenerateResponse(
            embedding_id=embedding.id,
            vector=result.vector,
            vector_hash=embedding.vector_hash,
            dimension=embedding.dimension,
        )

    @app.get("/api/v1/embeddings/{file_id}", response_model=Embedding)
    async def get_embedding(request: Request, file_id: str) -> Embedding:
        try:
            embedding = await run_in_threadpool(_services(request).embeddings.get, file_id)
        except Exception as exc:
            raise _server_error("get embedding", exc) from exc
        if embedding is None:
            raise HTTPException(status_code=404, detail=f"Embedding not found: {file_id}")
        return embedding

    @app.post("/api/v1/voices", response_model=VoiceMeta)
    async def create_voice(request: Request, req: VoiceCreateRequest) -> VoiceMeta:
        try:
            return await run_in_threadpool(
                _services(request).voices.create_voice,
                user_id=req.user_id,
                file_id=req.file_id,
                model=req.model,
                name=req.name,
                text=req.text,
                sample_text=req.sample_text,
            )
        except ClientInputError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except Exception as exc:
            raise _server_error("create voice", exc) from exc

    @app.get("/api/v1/voices", response_model=VoiceListResponse)
    async def list_voices(
        request: Request,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        user_id: str | None = None,
    ) -> VoiceListResponse:
        try:
            return await run_in_threadpool(
                _services(request).voices.list_voices,
                page=page,
                limit=limit,
                search=search,
                user_id=user_id,
            )
        except Exception as exc:
            raise _server_error("list voices", exc) from exc

    @app.get("/api/v1/voices/{voice_id}", response_model=VoiceMeta)
    async def get_voice(request: Request, voice_id: str) -> VoiceMeta:
        try:
            voice = await run_in_threadpool(_services(request).voices.get_voice, voice_id)
        except Exception as exc:
            raise _server_error("get voice", exc) from exc
        if voice is None:
            raise HTTPException(status_code=404, detail=f"Voice not found: {voice_id}")
        return voice

    @app.patch("/api/v1/voices/{voice_id}", response_model=VoiceMeta)
    async def update_voice(
        request: Request, voice_id: str, req: VoiceUpdateRequest
    ) -> VoiceMeta:
        try:
            voice = await run_in_threadpool(
                _services(request).voices.update_voice,
                voice_id,
                name=req.name,
                text=req.text,
                metadata=req.metadata,
            )
        except Exception as exc:
            raise _server_error("update voice", exc) from exc
        if voice is None:
            raise HTTPException(status_code=404, detail=f"Voice not found: {voice_id}")
        return voice

    @app.delete("/api/v1/voices/{voice_id}")
    async def delete_voice(request: Request, voice_id: str):
        try:
            deleted = await run_in_threadpool(_services(request).voices.delete_voice, voice_id)
        except Exception as exc:
            raise _server_error("delete voice", exc) from exc
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Voice not found: {voice_id}")
        return {"ok": True, "voice_id": voice_id}

    return app
