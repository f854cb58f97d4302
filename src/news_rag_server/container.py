"""
Service Container

Constructs the single instance of every service once at startup. Routes
receive these instances through `api.dependencies`; nothing else holds
process-wide state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings, settings as default_settings
from .chat.service import ChatService
from .db.kv_store import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore
from .embeddings.embedder import RemoteEmbedder
from .embeddings.index import VectorIndex
from .embeddings.provider import EmbeddingProvider
from .ingestion.feeds import FeedClient
from .ingestion.pipeline import NewsIngestor
from .llm.client import GenerationClient
from .llm.synthesizer import AnswerSynthesizer
from .sessions.store import SessionHistoryStore


@dataclass
class ServiceContainer:
    kv: KeyValueStore
    provider: EmbeddingProvider
    index: VectorIndex
    synthesizer: AnswerSynthesizer
    history: SessionHistoryStore
    chat: ChatService
    ingestor: NewsIngestor


def build_container(
    config: Optional[Settings] = None,
    kv: Optional[KeyValueStore] = None,
    embedder: Optional[RemoteEmbedder] = None,
    generation_client: Optional[GenerationClient] = None,
    feed_client: Optional[FeedClient] = None,
) -> ServiceContainer:
    """
    Build all services from configuration.

    Any collaborator may be passed in explicitly, which is how tests swap in
    an in-memory store or mocked HTTP transports.
    """
    config = config or default_settings

    if kv is None:
        if config.kv_backend == "memory":
            kv = InMemoryKeyValueStore()
        else:
            kv = SqlKeyValueStore(config.database_url)

    embedder = embedder or RemoteEmbedder(
        api_key=config.jina_api_key.get_secret_value(),
        model=config.embedding_model,
        base_url=config.embedding_api_url,
        dimensions=config.embedding_dimensions,
        timeout=config.embedding_timeout,
    )
    generation_client = generation_client or GenerationClient(
        api_key=config.gemini_api_key.get_secret_value(),
        model=config.generation_model,
        base_url=config.generation_api_url,
        timeout=config.generation_timeout,
    )

    provider = EmbeddingProvider(
        kv,
        embedder,
        cache_ttl=config.embeddings_cache_ttl,
        dimensions=config.embedding_dimensions,
    )
    index = VectorIndex(
        kv,
        dimensions=config.embedding_dimensions,
        document_ttl=config.document_ttl,
        metadata_ttl=config.metadata_ttl,
    )
    synthesizer = AnswerSynthesizer(generation_client)
    history = SessionHistoryStore(
        kv,
        max_messages_per_session=config.max_history,
        ttl_seconds=config.chat_history_ttl,
    )
    chat = ChatService(
        history,
        provider,
        index,
        synthesizer,
        top_k=config.search_top_k,
        threshold=config.similarity_threshold,
    )
    ingestor = NewsIngestor(
        provider,
        index,
        feed_client=feed_client or FeedClient(timeout=config.feed_timeout),
        batch_size=config.ingest_batch_size,
        batch_delay=config.ingest_batch_delay,
    )

    return ServiceContainer(
        kv=kv,
        provider=provider,
        index=index,
        synthesizer=synthesizer,
        history=history,
        chat=chat,
        ingestor=ingestor,
    )
