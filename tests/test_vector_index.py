import json

import pytest

from news_rag_server.core.errors import DimensionMismatchError, StorageError
from news_rag_server.embeddings.index import (
    ARTICLE_KEY_PREFIX,
    METADATA_KEY,
    VectorIndex,
    cosine_similarity,
)

from conftest import DIM, axis_vector


# ---------------------------------------------------------------------
# cosine_similarity
# ---------------------------------------------------------------------

class TestCosineSimilarity:

    def test_identical_vectors_score_one(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors_score_minus_one(self):
        assert cosine_similarity([1.0, 0.5], [-1.0, -0.5]) == pytest.approx(-1.0)

    def test_orthogonal_vectors_score_zero(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == 0.0

    def test_symmetric_and_bounded(self):
        pairs = [
            ([0.3, -1.2, 4.0], [2.0, 0.1, -0.7]),
            ([1e-8, 5.0, 5.0], [3.0, 3.0, 1e8]),
            ([0.1, 0.1, 0.1], [0.1, 0.1, 0.1]),
        ]
        for a, b in pairs:
            ab = cosine_similarity(a, b)
            assert ab == cosine_similarity(b, a)
            assert -1.0 <= ab <= 1.0

    def test_zero_vector_scores_exactly_zero(self):
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0

    def test_length_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


# ---------------------------------------------------------------------
# VectorIndex
# ---------------------------------------------------------------------

@pytest.fixture
def index(kv):
    return VectorIndex(kv, dimensions=DIM)


@pytest.mark.asyncio
async def test_search_returns_all_sorted_with_stable_ties(index, make_document):
    # b and d tie, as do c and e; insertion order must decide among them.
    vectors = {
        "a": axis_vector(1.0, 0.0),
        "b": axis_vector(1.0, 1.0),
        "c": axis_vector(0.0, 1.0),
        "d": axis_vector(1.0, 1.0),
        "e": axis_vector(0.0, 1.0),
    }
    for doc_id, vector in vectors.items():
        await index.upsert(make_document(doc_id, vector))

    results = await index.search(axis_vector(1.0, 0.2), k=len(vectors), threshold=-1)

    assert [doc.id for doc, _ in results] == ["a", "b", "d", "c", "e"]
    scores = [score for _, score in results]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_search_applies_threshold_and_k(index, make_document):
    await index.upsert(make_document("close", axis_vector(1.0, 0.1)))
    await index.upsert(make_document("closer", axis_vector(1.0, 0.0)))
    await index.upsert(make_document("far", axis_vector(0.0, 1.0)))

    results = await index.search(axis_vector(1.0), k=1, threshold=0.3)

    assert len(results) == 1
    assert results[0][0].id == "closer"
    assert results[0][1] == pytest.approx(1.0)

    # Orthogonal document scores 0 and is filtered out by a 0.3 threshold.
    all_above = await index.search(axis_vector(1.0), k=10, threshold=0.3)
    assert {doc.id for doc, _ in all_above} == {"close", "closer"}


@pytest.mark.asyncio
async def test_search_rejects_wrong_query_dimension(index, make_document):
    await index.upsert(make_document("a", axis_vector(1.0)))

    with pytest.raises(DimensionMismatchError):
        await index.search([1.0, 0.0, 0.0], k=5, threshold=-1)


@pytest.mark.asyncio
async def test_search_on_empty_index_returns_empty(index):
    assert await index.search(axis_vector(1.0), k=5, threshold=-1) == []


@pytest.mark.asyncio
async def test_upsert_rejects_wrong_dimension(index, make_document, kv):
    with pytest.raises(DimensionMismatchError):
        await index.upsert(make_document("short", [1.0, 2.0]))

    assert len(index) == 0
    assert await kv.scan(ARTICLE_KEY_PREFIX) == []


@pytest.mark.asyncio
async def test_upsert_replaces_by_id_in_place(index, make_document, kv):
    await index.upsert(make_document("a", axis_vector(1.0), title="First"))
    await index.upsert(make_document("b", axis_vector(1.0)))
    await index.upsert(make_document("a", axis_vector(1.0), title="Revised"))

    assert len(index) == 2
    assert await kv.scan(ARTICLE_KEY_PREFIX) == ["article:a", "article:b"]

    stored = json.loads(await kv.get("article:a"))
    assert stored["title"] == "Revised"

    # Equal scores: "a" keeps its original position ahead of "b".
    results = await index.search(axis_vector(1.0), k=5, threshold=-1)
    assert [(doc.id, doc.title) for doc, _ in results] == [("a", "Revised"), ("b", "Title b")]


@pytest.mark.asyncio
async def test_upsert_persists_with_document_ttl(kv, clock, make_document):
    index = VectorIndex(kv, dimensions=DIM, document_ttl=60)
    await index.upsert(make_document("a", axis_vector(1.0)))

    clock.advance(61)

    assert await kv.get("article:a") is None


@pytest.mark.asyncio
async def test_lazy_reload_after_restart(kv, make_document):
    first = VectorIndex(kv, dimensions=DIM)
    await first.upsert(make_document("a", axis_vector(1.0), source="BBC News"))
    await first.upsert(make_document("b", axis_vector(0.0, 1.0), source="TechCrunch"))

    restarted = VectorIndex(kv, dimensions=DIM)
    assert len(restarted) == 0

    results = await restarted.search(axis_vector(1.0), k=5, threshold=0.3)

    assert [doc.id for doc, _ in results] == ["a"]
    assert len(restarted) == 2


@pytest.mark.asyncio
async def test_reload_keeps_insertion_order_for_ties(kv, make_document):
    first = VectorIndex(kv, dimensions=DIM)
    for doc_id in ["zeta", "alpha", "mid"]:
        await first.upsert(make_document(doc_id, axis_vector(1.0)))

    before = [doc.id for doc, _ in await first.search(axis_vector(1.0), k=5, threshold=-1)]

    restarted = VectorIndex(kv, dimensions=DIM)
    after = [doc.id for doc, _ in await restarted.search(axis_vector(1.0), k=5, threshold=-1)]

    assert before == ["zeta", "alpha", "mid"]
    assert after == before


@pytest.mark.asyncio
async def test_replacement_after_restart_keeps_position(kv, make_document):
    first = VectorIndex(kv, dimensions=DIM)
    await first.upsert(make_document("zeta", axis_vector(1.0)))
    await first.upsert(make_document("alpha", axis_vector(1.0)))

    restarted = VectorIndex(kv, dimensions=DIM)
    await restarted.reload()
    await restarted.upsert(make_document("new", axis_vector(1.0)))
    await restarted.upsert(make_document("zeta", axis_vector(1.0), title="Revised"))

    again = VectorIndex(kv, dimensions=DIM)
    results = await again.search(axis_vector(1.0), k=5, threshold=-1)

    assert [(doc.id, doc.title) for doc, _ in results] == [
        ("zeta", "Revised"),
        ("alpha", "Title alpha"),
        ("new", "Title new"),
    ]


@pytest.mark.asyncio
async def test_records_without_sequence_load_first_by_key(kv, make_document):
    index = VectorIndex(kv, dimensions=DIM)
    await index.upsert(make_document("fresh", axis_vector(1.0)))
    for doc_id in ["old-b", "old-a"]:
        legacy = make_document(doc_id, axis_vector(1.0))
        await kv.set(f"article:{doc_id}", legacy.model_dump_json(by_alias=True))

    restarted = VectorIndex(kv, dimensions=DIM)
    results = await restarted.search(axis_vector(1.0), k=5, threshold=-1)

    assert [doc.id for doc, _ in results] == ["old-a", "old-b", "fresh"]


@pytest.mark.asyncio
async def test_reload_skips_records_without_usable_embedding(kv, make_document):
    good = make_document("good", axis_vector(1.0))
    await kv.set("article:good", good.model_dump_json(by_alias=True))
    await kv.set("article:none", json.dumps({"id": "none", "title": "No vector"}))
    await kv.set("article:empty", json.dumps({"id": "empty", "embedding": []}))
    await kv.set("article:short", json.dumps({"id": "short", "embedding": [1.0, 2.0]}))
    await kv.set("article:broken", "{not json")

    index = VectorIndex(kv, dimensions=DIM)
    loaded = await index.reload()

    assert loaded == 1
    assert len(index) == 1


@pytest.mark.asyncio
async def test_reload_reads_legacy_records_keyed_by_guid(kv):
    legacy = {
        "title": "Legacy article",
        "content": "Stored before ids were persisted",
        "url": "https://news.example/legacy",
        "source": "BBC News",
        "publishedDate": "Mon, 01 Jan 2024 10:00:00 GMT",
        "guid": "https://news.example/legacy",
        "embedding": axis_vector(1.0),
        "processedAt": "2024-01-01T10:05:00Z",
    }
    await kv.set("article:https://news.example/legacy", json.dumps(legacy))

    index = VectorIndex(kv, dimensions=DIM)
    await index.reload()

    [(doc, score)] = await index.search(axis_vector(1.0), k=5, threshold=0.3)
    assert doc.id == "https://news.example/legacy"
    assert doc.published_date == "Mon, 01 Jan 2024 10:00:00 GMT"
    assert score == pytest.approx(1.0)


class _BrokenStore:
    async def scan(self, prefix):
        raise StorageError("store offline")

    async def get(self, key):
        raise StorageError("store offline")


@pytest.mark.asyncio
async def test_reload_degrades_to_empty_when_store_unavailable():
    index = VectorIndex(_BrokenStore(), dimensions=DIM)

    assert await index.reload() == 0
    assert await index.search(axis_vector(1.0), k=5, threshold=-1) == []


@pytest.mark.asyncio
async def test_stats_and_metadata(index, make_document, kv):
    await index.upsert(make_document("a", axis_vector(1.0), source="TechCrunch"))
    await index.upsert(make_document("b", axis_vector(1.0), source="BBC News"))
    await index.upsert(make_document("c", axis_vector(1.0), source="BBC News"))

    stats = await index.stats()

    assert stats.articles_in_memory == 3
    assert stats.articles_in_store == 3
    assert stats.sources == ["BBC News", "TechCrunch"]
    assert stats.last_updated is not None
    assert stats.memory_usage_mb >= 0

    metadata = json.loads(await kv.get(METADATA_KEY))
    assert metadata["totalDocuments"] == 3
    assert metadata["sources"] == ["BBC News", "TechCrunch"]

    payload = stats.model_dump(by_alias=True)
    assert set(payload) == {
        "articlesInMemory",
        "articlesInStore",
        "sources",
        "lastUpdated",
        "memoryUsageMB",
    }


@pytest.mark.asyncio
async def test_clear_removes_memory_records_and_metadata(index, make_document, kv):
    await index.upsert(make_document("a", axis_vector(1.0)))
    await index.upsert(make_document("b", axis_vector(1.0)))
    await kv.set("chat:s1", "[]")

    await index.clear()

    assert len(index) == 0
    assert await kv.scan(ARTICLE_KEY_PREFIX) == []
    assert await kv.get(METADATA_KEY) is None
    # Unrelated keys survive.
    assert await kv.get("chat:s1") == "[]"
