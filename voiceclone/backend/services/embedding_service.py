from __future__ import annotations

import hashlib
import logging
import math

import numpy as np

from voiceclone.backend.errors import ClientInputError
from voiceclone.backend.storage import Storage
from voiceclone.backend.types import Embedding, EmbeddingResult, utc_now_iso

logger = logging.getLogger("voiceclone.embedding")

DEFAULT_MODEL_VERSION = "random-v1"

_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345
_LCG_MASK = 0x7FFFFFFF
_EMBEDDING_ID_LENGTH = 32


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def hash_to_seed(file_id: str) -> int:
    """31-multiplier rolling hash over UTF-16 code units, wrapped to int32, absolute value."""
    raw = file_id.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(raw), 2):
        code = raw[i] | (raw[i + 1] << 8)
        h = _to_int32(_to_int32(h << 5) - h + code)
    return abs(h)


def generate_vector(seed: int, dimension: int) -> list[float]:
    if dimension <= 0:
        raise ClientInputError(f"Embedding dimension must be >= 1, got {dimension}.")
    state = seed
    raw: list[float] = []
    for _ in range(dimension):
        # The product is rounded to a double before truncation, as the
        # stored vectors were produced with double-only arithmetic.
        state = int(float(state) * _LCG_MULTIPLIER + _LCG_INCREMENT) & _LCG_MASK
        raw.append((state / _LCG_MASK) * 2 - 1)

    total = 0.0
    for value in raw:
        total += value * value
    norm = math.sqrt(total)
    return [value / norm for value in raw]


def compute_vector_hash(vector: list[float]) -> str:
    payload = np.asarray(vector, dtype="<f4").tobytes()
    return hashlib.sha256(payload).hexdigest()


def embedding_id(file_id: str, vector_hash: str) -> str:
    return hashlib.md5(f"{file_id}-{vector_hash}".encode("utf-8")).hexdigest()[:_EMBEDDING_ID_LENGTH]


class EmbeddingService:
    def __init__(
        self,
        storage: Storage,
        dimension: int = 256,
        model_version: str = DEFAULT_MODEL_VERSION,
    ) -> None:
        self.storage = storage
        self.dimension = int(dimension)
        self.model_version = model_version

    def generate(self, file_id: str, dimension: int | None = None) -> EmbeddingResult:
        dim = self.dimension if dimension is None else int(dimension)
        vector = generate_vector(hash_to_seed(file_id), dim)
        return EmbeddingResult(vector=vector, vector_hash=compute_vector_hash(vector))

    def save(
        self,
        file_id: str,
        vector: list[float],
        vector_hash: str,
        model_version: str | None = None,
    ) -> Embedding:
        candidate = {
            "id": embedding_id(file_id, vector_hash),
            "file_id": file_id,
            "vector": list(vector),
            "vector_hash": vector_hash,
            "dimension": len(vector),
            "model_version": self.model_version if model_version is None else model_version,
            "created_at": utc_now_iso(),
        }
        stored = Embedding(**self.storage.insert_embedding_if_absent(candidate))
        if stored.id == candidate["id"] and stored.created_at == candidate["created_at"]:
            logger.info("embedding stored: file_id=%s id=%s dim=%d", file_id, stored.id, stored.dimension)
        return stored

    def get(self, file_id: str) -> Embedding | None:
        row = self.storage.get_embedding(file_id)
        return None if row is None else Embedding(**row)

    def generate_and_save(self, file_id: str) -> tuple[EmbeddingResult, Embedding]:
        result = self.generate(file_id)
        return result, self.save(file_id, result.vector, result.vector_hash)
