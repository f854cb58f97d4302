import json
from typing import Callable, List

import httpx
import pytest

from news_rag_server.db.kv_store import InMemoryKeyValueStore
from news_rag_server.embeddings.embedder import RemoteEmbedder
from news_rag_server.embeddings.models import Document
from news_rag_server.llm.client import GenerationClient

DIM = 384

KEYWORDS = ["mars", "election", "economy", "football", "chip"]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def keyword_vector(text: str) -> List[float]:
    """Deterministic test embedding: one axis per known keyword."""
    vector = [0.0] * DIM
    lowered = text.lower()
    for i, word in enumerate(KEYWORDS):
        if word in lowered:
            vector[i] = 1.0
    vector[DIM - 1] = 0.05
    return vector


def axis_vector(*components: float) -> List[float]:
    vector = [0.0] * DIM
    for i, value in enumerate(components):
        vector[i] = value
    return vector


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def make_document() -> Callable[..., Document]:
    def _make(doc_id: str, embedding: List[float], **fields) -> Document:
        fields.setdefault("title", f"Title {doc_id}")
        fields.setdefault("content", f"Content of {doc_id}")
        fields.setdefault("url", f"https://news.example/{doc_id}")
        fields.setdefault("source", "BBC News")
        return Document(id=doc_id, embedding=embedding, **fields)

    return _make


@pytest.fixture
def embedding_calls() -> List[dict]:
    return []


@pytest.fixture
def working_embedder(embedding_calls) -> RemoteEmbedder:
    """RemoteEmbedder whose service answers with keyword vectors."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        embedding_calls.append(payload)
        return httpx.Response(
            200,
            json={"data": [{"embedding": keyword_vector(t)} for t in payload["input"]]},
        )

    return RemoteEmbedder(
        api_key="test-key",
        base_url="https://embeddings.test/v1/embeddings",
        dimensions=DIM,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def failing_embedder(embedding_calls) -> RemoteEmbedder:
    """RemoteEmbedder whose service always answers HTTP 500."""

    def handler(request: httpx.Request) -> httpx.Response:
        embedding_calls.append(json.loads(request.content))
        return httpx.Response(500, json={"error": "upstream unavailable"})

    return RemoteEmbedder(
        api_key="test-key",
        base_url="https://embeddings.test/v1/embeddings",
        dimensions=DIM,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def generation_prompts() -> List[str]:
    return []


@pytest.fixture
def working_generator(generation_prompts) -> GenerationClient:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        generation_prompts.append(payload["contents"][0]["parts"][0]["text"])
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "Generated answer [Source 1]"}]}}]},
        )

    return GenerationClient(
        api_key="test-key",
        base_url="https://generation.test/v1beta/models",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def failing_generator() -> GenerationClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "overloaded"})

    return GenerationClient(
        api_key="test-key",
        base_url="https://generation.test/v1beta/models",
        model="test-model",
        transport=httpx.MockTransport(handler),
    )
