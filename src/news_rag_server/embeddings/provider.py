"""
Embedding Provider

Content-addressed caching and graceful degradation around the remote
embedding client.

Lookup order for `embed(text)`:

1. Durable cache (`embedding:<sha256>`), checked before any remote call.
2. Remote embedding service; successful vectors are cached with
   `embeddings_cache_ttl`.
3. Deterministic local fallback derived from the text. Fallback vectors are
   returned tagged as `fallback` and are never cached.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from typing import List, Optional

from ..config import settings
from ..core.errors import InvalidInputError, StorageError
from ..db.kv_store import KeyValueStore
from .embedder import EmbeddingError, RemoteEmbedder
from .models import EmbeddingResult

logger = logging.getLogger("newsrag.provider")

CACHE_KEY_PREFIX = "embedding:"


def cache_key_for(text: str) -> str:
    """Return the bounded-length cache key for already-normalized text."""
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}{digest}"


def fallback_embedding(text: str, dimensions: int) -> List[float]:
    """
    Derive a deterministic, L2-normalized vector from the characters of `text`.

    Each lower-cased word contributes its character codes to the leading
    components, weighted by 1 / (word position + 1). An input without any
    characters yields the zero vector.
    """
    vector = [0.0] * dimensions

    for position, word in enumerate(text.lower().split()):
        weight = 1.0 / (position + 1)
        for i in range(min(len(word), dimensions)):
            vector[i] += ord(word[i]) * weight

    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude > 0:
        vector = [v / magnitude for v in vector]

    return vector


class EmbeddingProvider:
    """
    Embedding capability with two variants: genuine remote embeddings and a
    local approximation used while the remote service is unavailable.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        embedder: RemoteEmbedder,
        cache_ttl: Optional[int] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        self._kv = kv
        self._embedder = embedder
        self.cache_ttl = settings.embeddings_cache_ttl if cache_ttl is None else cache_ttl
        self.dimensions = settings.embedding_dimensions if dimensions is None else dimensions

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> EmbeddingResult:
        """
        Embed `text`, degrading to the local fallback on remote failure.

        Raises
        ------
        InvalidInputError
            If `text` is empty after trimming.
        """
        if text is None or not text.strip():
            raise InvalidInputError("Text cannot be empty")

        normalized = text.strip()
        key = cache_key_for(normalized)

        cached = await self._read_cache(key)
        if cached is not None:
            return EmbeddingResult(vector=cached, kind="cache")

        try:
            vector = await self._embedder.embed_one(normalized)
        except EmbeddingError as exc:
            logger.warning("Using fallback embedding generation: %s", exc)
            return EmbeddingResult(
                vector=fallback_embedding(normalized, self.dimensions),
                kind="fallback",
            )

        await self._write_cache(key, vector)
        return EmbeddingResult(vector=vector, kind="remote")

    async def embed_vector(self, text: str) -> List[float]:
        return (await self.embed(text)).vector

    # ------------------------------------------------------------------
    # Cache helpers (best effort)
    # ------------------------------------------------------------------

    async def _read_cache(self, key: str) -> Optional[List[float]]:
        try:
            raw = await self._kv.get(key)
        except StorageError as exc:
            logger.warning("Cache read error: %s", exc)
            return None

        if raw is None:
            return None

        try:
            vector = json.loads(raw)
        except ValueError:
            logger.warning("Discarding malformed cache entry %s", key)
            return None

        if not isinstance(vector, list) or len(vector) != self.dimensions:
            logger.warning("Discarding cache entry %s with unexpected shape", key)
            return None

        logger.debug("Embedding cache hit for %s", key)
        return [float(v) for v in vector]

    async def _write_cache(self, key: str, vector: List[float]) -> None:
        try:
            await self._kv.set(key, json.dumps(vector), self.cache_ttl)
        except StorageError as exc:
            logger.warning("Cache write error: %s", exc)
