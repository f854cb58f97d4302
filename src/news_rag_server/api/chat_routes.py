"""
Chat Routes: Retrieval-Augmented Conversational Interface

This module implements the conversational endpoints:
- POST /chat                   one retrieval-augmented chat turn
- GET /history/{session_id}    the session's stored messages
- DELETE /history/{session_id} drop a session's history

Validation failures are raised as `ValidationError` and rendered as 400 by
the handler registered in `main.create_app`; failed turns surface as
`PipelineError` (500 with a generic message).
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .models import ChatRequest, ChatResponse, ClearHistoryResponse, HistoryResponse
from .dependencies import get_chat_service
from ..chat.service import ChatService
from ..core.errors import PipelineError, StorageError, ValidationError

logger = logging.getLogger("newsrag.chat")

router = APIRouter(tags=["chat"])

MAX_MESSAGE_LENGTH = 1000


# ---------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------

def _validated_message(req: ChatRequest) -> str:
    """Check the request shape and return the trimmed message."""
    if not req.session_id or not req.message:
        raise ValidationError(
            "Missing required fields",
            required=["sessionId", "message"],
        )

    if not isinstance(req.message, str) or not req.message.strip():
        raise ValidationError("Message must be a non-empty string")

    if len(req.message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")

    return req.message.strip()


# ---------------------------------------------------------------------
# Chat Route
# ---------------------------------------------------------------------

@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask a question about recent news",
    status_code=status.HTTP_200_OK,
)
async def chat(
    req: ChatRequest,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatResponse:
    """
    Run one chat turn: record, embed, retrieve, answer, record.

    Parameters
    ----------
    req : ChatRequest
        Contains:
        - sessionId: Client-chosen session identifier
        - message: The user's question (1-1000 characters)

    Returns
    -------
    ChatResponse
        Answer text, cited sources and relevance.
    """
    message = _validated_message(req)

    try:
        return await chat_service.process_user_message(req.session_id, message)
    except StorageError as exc:
        raise PipelineError("Failed to record user message") from exc


# ---------------------------------------------------------------------
# History Routes
# ---------------------------------------------------------------------

@router.get(
    "/history/{session_id}",
    response_model=HistoryResponse,
    response_model_exclude_none=True,
    summary="Get chat history for a session",
)
async def get_history(
    session_id: str,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> HistoryResponse:
    messages = await chat_service.get_history(session_id)
    return HistoryResponse(session_id=session_id, messages=messages, count=len(messages))


@router.delete(
    "/history/{session_id}",
    response_model=ClearHistoryResponse,
    summary="Clear chat history for a session",
)
async def clear_history(
    session_id: str,
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
):
    try:
        await chat_service.clear_history(session_id)
    except StorageError:
        logger.exception("Error clearing session %s", session_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to clear session history"},
        )

    return ClearHistoryResponse(
        message="Session history cleared successfully",
        session_id=session_id,
    )
