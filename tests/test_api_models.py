import pytest
from pydantic import ValidationError

from news_rag_server.api.models import (
    ChatRequest,
    ChatResponse,
    HistoryMessage,
    SourceReference,
)
from news_rag_server.embeddings.models import Document, IndexStats


def test_chat_request_accepts_camel_case():
    """Verify the wire name sessionId maps onto session_id."""
    req = ChatRequest.model_validate({"sessionId": "s1", "message": "hi"})
    assert req.session_id == "s1"
    assert req.message == "hi"


def test_chat_request_fields_default_to_none():
    """Verify missing fields are left for the route to report."""
    req = ChatRequest.model_validate({})
    assert req.session_id is None
    assert req.message is None


def test_chat_response_serializes_camel_case():
    resp = ChatResponse(
        message="answer",
        sources=[SourceReference(title="T", url="https://x", relevance_score=0.8)],
        relevance="high",
    )
    data = resp.model_dump(by_alias=True)
    assert data["sources"][0]["relevanceScore"] == 0.8


def test_chat_response_rejects_unknown_relevance():
    """Verify relevance is restricted to high / low."""
    with pytest.raises(ValidationError):
        ChatResponse(message="answer", relevance="medium")


def test_history_message_sender_is_restricted():
    with pytest.raises(ValidationError):
        HistoryMessage(text="x", sender="system", timestamp="2024-05-01T00:00:00Z")


def test_document_reads_stored_camel_case_record():
    """Verify stored article records load with their camelCase keys."""
    doc = Document.model_validate(
        {
            "id": "a1",
            "title": "T",
            "embedding": [0.1, 0.2],
            "publishedDate": "Mon, 06 May 2024",
            "processedAt": "2024-05-06T10:00:00+00:00",
            "legacyField": True,
        }
    )
    assert doc.published_date == "Mon, 06 May 2024"
    assert doc.processed_at == "2024-05-06T10:00:00+00:00"


@pytest.mark.parametrize("record", [{"id": "", "embedding": [1.0]}, {"id": "a", "embedding": []}])
def test_document_requires_id_and_embedding(record):
    with pytest.raises(ValidationError):
        Document.model_validate(record)


def test_index_stats_memory_alias():
    stats = IndexStats(articles_in_memory=0, memory_usage_mb=1.5)
    assert stats.model_dump(by_alias=True)["memoryUsageMB"] == 1.5
