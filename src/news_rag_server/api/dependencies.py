from fastapi import Request

from ..chat.service import ChatService
from ..container import ServiceContainer
from ..embeddings.index import VectorIndex
from ..ingestion.pipeline import NewsIngestor


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_chat_service(request: Request) -> ChatService:
    return get_container(request).chat


def get_vector_index(request: Request) -> VectorIndex:
    return get_container(request).index


def get_ingestor(request: Request) -> NewsIngestor:
    return get_container(request).ingestor
