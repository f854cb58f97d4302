"""
API Models for the News RAG Server

This module defines the Pydantic models used for request/response validation
across the chat, history, ingestion and stats endpoints, and the chat
message record persisted by the session history store.

Design Goals
------------
- Strong typing
- camelCase on the wire, snake_case in Python
- Safe defaults (no shared mutable state)
- Forward compatibility with testing and OpenAPI generation
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)

Relevance = Literal["high", "low"]


# ---------------------------------------------------------------------
# Chat History
# ---------------------------------------------------------------------

class HistoryMessage(BaseModel):
    """
    Single message in a session's chat history.
    """
    id: Optional[str] = None
    text: str
    sender: Literal["user", "bot"]
    timestamp: str
    sources: Optional[List[str]] = None
    is_error: Optional[bool] = None
    relevance: Optional[Relevance] = None

    model_config = _CAMEL


class HistoryResponse(BaseModel):
    session_id: str
    messages: List[HistoryMessage]
    count: int = Field(..., ge=0)

    model_config = _CAMEL


class ClearHistoryResponse(BaseModel):
    message: str
    session_id: str

    model_config = _CAMEL


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

class ChatRequest(BaseModel):
    """
    Chat request payload.

    Fields are optional here so that missing or mistyped values are reported
    with the API's own 400 messages rather than a schema error.
    """
    session_id: Optional[str] = None
    message: Optional[Any] = None

    model_config = _CAMEL


class SourceReference(BaseModel):
    title: str
    url: Optional[str] = None
    relevance_score: float = 0.0

    model_config = _CAMEL


class ChatResponse(BaseModel):
    """
    Chat response payload.
    """
    message: str
    sources: List[SourceReference] = Field(default_factory=list)
    relevance: Relevance

    model_config = _CAMEL


# ---------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------

class IngestResponse(BaseModel):
    message: str
    articles_processed: int = Field(..., ge=0)
    timestamp: str

    model_config = _CAMEL
