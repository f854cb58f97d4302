"""
Vector Index

This module implements the in-memory vector index for embedded news
articles, backed by the durable key-value store for reload after restart.

Key Properties
--------------
- Exact cosine-similarity search (linear scan, float64)
- Upsert-by-id in memory and in durable storage
- Stable ranking: equal scores keep insertion order
- Reload from durable storage, explicitly at startup and lazily when empty
- Strong validation of vector dimensionality
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from pydantic import ValidationError as ModelValidationError

from ..config import settings
from ..core.errors import DimensionMismatchError, StorageError
from ..db.kv_store import KeyValueStore
from .models import Document, IndexStats

logger = logging.getLogger("newsrag.index")

ARTICLE_KEY_PREFIX = "article:"
METADATA_KEY = "vectorstore:metadata"

# Stored alongside each article record; orders documents on reload.
SEQUENCE_FIELD = "sequence"


# ---------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------

def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape != b.shape:
        raise DimensionMismatchError(
            f"Vectors must have the same length ({a.shape[0]} != {b.shape[0]})"
        )

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, 0.0 when either has zero norm.

    Raises
    ------
    DimensionMismatchError
        If the vectors differ in length.
    """
    return _cosine(
        np.asarray(a, dtype=np.float64),
        np.asarray(b, dtype=np.float64),
    )


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------
# Vector Index
# ---------------------------------------------------------------------

class VectorIndex:
    """
    In-memory collection of embedded documents with durable backing.

    The in-memory structures are guarded by a lock so a search never sees a
    half-applied upsert. Searches running during ingestion may observe a
    partially ingested collection.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        dimensions: Optional[int] = None,
        document_ttl: Optional[int] = None,
        metadata_ttl: Optional[int] = None,
    ) -> None:
        """
        Parameters
        ----------
        kv : KeyValueStore
            Durable store holding `article:<id>` records and metadata.

        dimensions : Optional[int]
            Fixed embedding dimensionality. Defaults to settings.embedding_dimensions.

        document_ttl : Optional[int]
            Expiry for persisted documents, in seconds.

        metadata_ttl : Optional[int]
            Expiry for the cached metadata record, in seconds.
        """
        self._kv = kv
        self.dimensions = settings.embedding_dimensions if dimensions is None else dimensions
        self._document_ttl = settings.document_ttl if document_ttl is None else document_ttl
        self._metadata_ttl = settings.metadata_ttl if metadata_ttl is None else metadata_ttl

        self._docs: Dict[str, Document] = {}
        self._vectors: Dict[str, np.ndarray] = {}
        self._sequence: Dict[str, int] = {}
        self._last_sequence = 0
        self._last_updated: Optional[str] = None

        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _validate(self, doc: Document) -> None:
        if not doc.embedding:
            raise DimensionMismatchError(f"Document {doc.id!r} has no embedding.")

        if len(doc.embedding) != self.dimensions:
            raise DimensionMismatchError(
                f"Document {doc.id!r} has {len(doc.embedding)} dimensions, "
                f"expected {self.dimensions}."
            )

    def _put(self, doc: Document, sequence: int) -> None:
        # Replacing an existing id keeps its original insertion position.
        with self._lock:
            self._docs[doc.id] = doc
            self._vectors[doc.id] = np.asarray(doc.embedding, dtype=np.float64)
            self._sequence[doc.id] = sequence
            self._last_sequence = max(self._last_sequence, sequence)

    def _sequence_for(self, doc_id: str) -> int:
        with self._lock:
            existing = self._sequence.get(doc_id)
            if existing is not None:
                return existing
            # Wall-clock based so numbering keeps increasing across restarts.
            self._last_sequence = max(self._last_sequence + 1, time.time_ns())
            return self._last_sequence

    def _snapshot(self) -> List[Document]:
        with self._lock:
            return list(self._docs.values())

    def _metadata(self) -> dict:
        docs = self._snapshot()
        return {
            "totalDocuments": len(docs),
            "sources": sorted({d.source for d in docs if d.source}),
            "lastUpdated": self._last_updated,
        }

    async def _refresh_metadata(self) -> None:
        try:
            await self._kv.set(
                METADATA_KEY,
                json.dumps(self._metadata()),
                self._metadata_ttl,
            )
        except StorageError as exc:
            logger.warning("Failed to update store metadata: %s", exc)

    async def _read_metadata(self) -> Optional[dict]:
        try:
            raw = await self._kv.get(METADATA_KEY)
            return json.loads(raw) if raw else None
        except (StorageError, ValueError) as exc:
            logger.warning("Failed to read store metadata: %s", exc)
            return None

    def _parse_record(self, key: str, raw: str) -> Optional[Tuple[Document, int]]:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Skipping malformed record %s", key)
            return None

        if not isinstance(data, dict) or not data.get("embedding"):
            return None

        # Records written before ids were stored carry them only in the key.
        data.setdefault("id", data.get("guid") or key[len(ARTICLE_KEY_PREFIX):])

        try:
            doc = Document.model_validate(data)
        except ModelValidationError:
            logger.warning("Skipping invalid document record %s", key)
            return None

        if len(doc.embedding) != self.dimensions:
            logger.warning(
                "Skipping %s: %d dimensions, expected %d",
                key,
                len(doc.embedding),
                self.dimensions,
            )
            return None

        sequence = data.get(SEQUENCE_FIELD)
        if not isinstance(sequence, int) or isinstance(sequence, bool):
            sequence = 0

        return doc, sequence

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(self, doc: Document) -> None:
        """
        Insert or replace a document by id in durable storage and memory.

        Raises
        ------
        DimensionMismatchError
            If the document's embedding is missing or of the wrong dimension.
        StorageError
            If the document cannot be persisted.
        """
        self._validate(doc)

        sequence = self._sequence_for(doc.id)
        record = doc.model_dump(mode="json", by_alias=True)
        record[SEQUENCE_FIELD] = sequence

        await self._kv.set(
            f"{ARTICLE_KEY_PREFIX}{doc.id}",
            json.dumps(record),
            self._document_ttl,
        )

        self._put(doc, sequence)
        self._last_updated = _utc_iso()
        await self._refresh_metadata()

    async def search(
        self,
        query: Sequence[float],
        k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[Tuple[Document, float]]:
        """
        Rank stored documents by cosine similarity to `query`.

        Returns at most `k` (document, score) pairs with score > `threshold`,
        in descending score order.

        Raises
        ------
        DimensionMismatchError
            If `query` does not match the index dimensionality.
        """
        k = settings.search_top_k if k is None else k
        threshold = settings.similarity_threshold if threshold is None else threshold

        if not self._docs:
            logger.info("Vector index is empty, loading from durable store...")
            await self.reload()

        with self._lock:
            entries = [(doc, self._vectors[doc.id]) for doc in self._docs.values()]

        if not entries or k <= 0:
            return []

        q = np.asarray(query, dtype=np.float64)

        scored: List[Tuple[Document, float]] = []
        for doc, vector in entries:
            score = _cosine(q, vector)
            if score > threshold:
                scored.append((doc, score))

        # list.sort is stable, also with reverse=True
        scored.sort(key=lambda item: item[1], reverse=True)
        results = scored[:k]

        logger.info(
            "Found %d similar articles with similarity > %s",
            len(results),
            threshold,
        )
        return results

    async def reload(self) -> int:
        """
        Repopulate memory from every durable `article:*` record.

        Records without an embedding are skipped. Documents already in memory
        are kept. Loaded documents are ranked in their original insertion
        order; records without a stored sequence come first, by key. Storage
        failures degrade to whatever could be loaded.

        Returns
        -------
        int
            Number of documents loaded from storage.
        """
        try:
            keys = await self._kv.scan(ARTICLE_KEY_PREFIX)
        except StorageError as exc:
            logger.error("Error loading index from durable store: %s", exc)
            return 0

        logger.info("Loading %d articles from durable store...", len(keys))

        parsed: List[Tuple[int, str, Document]] = []
        for key in keys:
            try:
                raw = await self._kv.get(key)
            except StorageError as exc:
                logger.error("Error reading %s: %s", key, exc)
                continue

            if raw is None:
                continue

            record = self._parse_record(key, raw)
            if record is None:
                continue

            doc, sequence = record
            parsed.append((sequence, key, doc))

        parsed.sort(key=lambda item: (item[0], item[1]))

        loaded = 0
        for sequence, _key, doc in parsed:
            with self._lock:
                if doc.id in self._docs:
                    continue
                self._put(doc, sequence)
            loaded += 1

        logger.info("Loaded %d articles into vector index", len(self))
        return loaded

    async def stats(self) -> IndexStats:
        """
        Return index statistics for diagnostics.
        """
        docs = self._snapshot()
        metadata = await self._read_metadata() or {}

        try:
            in_store: Optional[int] = len(await self._kv.scan(ARTICLE_KEY_PREFIX))
        except StorageError as exc:
            logger.warning("Failed to count stored articles: %s", exc)
            in_store = None

        size_bytes = sum(len(d.model_dump_json(by_alias=True)) for d in docs)

        return IndexStats(
            articles_in_memory=len(docs),
            articles_in_store=in_store,
            sources=sorted({d.source for d in docs if d.source}),
            last_updated=self._last_updated or metadata.get("lastUpdated"),
            memory_usage_mb=round(size_bytes / (1024 * 1024), 2),
        )

    async def clear(self) -> None:
        """
        Remove all documents from memory and durable storage, plus metadata.
        """
        with self._lock:
            self._docs.clear()
            self._vectors.clear()
            self._sequence.clear()
        self._last_updated = None

        keys = await self._kv.scan(ARTICLE_KEY_PREFIX)
        if keys:
            await self._kv.delete(*keys)
        await self._kv.delete(METADATA_KEY)

        logger.info("Vector index cleared")

    def sources(self) -> List[str]:
        return self._metadata()["sources"]

    def __len__(self) -> int:
        with self._lock:
            return len(self._docs)
