"""
Chat Service: Retrieval-Augmented Conversation Turn

This module composes the retrieval pipeline into a single request/response
cycle.

Turn Sequence
-------------
1. Record the user message in the session history (failure is fatal).
2. Embed the message.
3. Retrieve similar articles from the vector index.
4. No match: return canned guidance with `relevance: "low"` and skip
   answer generation.
5. Otherwise synthesize an answer from the retrieved articles.
6. Record the bot message and respond.

Any failure in steps 2-6 is recorded as an error message in the history
(best effort) and re-raised as `PipelineError`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..api.models import ChatResponse, HistoryMessage, SourceReference
from ..config import settings
from ..core.errors import PipelineError
from ..embeddings.index import VectorIndex
from ..embeddings.provider import EmbeddingProvider
from ..llm.synthesizer import AnswerSynthesizer
from ..prompts import APOLOGY_MESSAGE, NO_MATCH_TEMPLATE
from ..sessions.store import SessionHistoryStore

logger = logging.getLogger("newsrag.chat")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatService:
    def __init__(
        self,
        history: SessionHistoryStore,
        provider: EmbeddingProvider,
        index: VectorIndex,
        synthesizer: AnswerSynthesizer,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> None:
        self._history = history
        self._provider = provider
        self._index = index
        self._synthesizer = synthesizer
        self._top_k = top_k if top_k is not None else settings.search_top_k
        self._threshold = threshold if threshold is not None else settings.similarity_threshold

    # ------------------------------------------------------------------
    # Chat turn
    # ------------------------------------------------------------------

    async def process_user_message(self, session_id: str, message: str) -> ChatResponse:
        """
        Run one chat turn for `session_id`.

        Raises
        ------
        StorageError
            If the user message cannot be recorded.
        PipelineError
            If embedding, retrieval, synthesis or recording the answer fails.
        """
        await self._history.append(
            session_id,
            HistoryMessage(text=message, sender="user", timestamp=_now()),
        )

        try:
            query_embedding = await self._provider.embed_vector(message)
            documents = await self._index.search(query_embedding, self._top_k, self._threshold)

            if not documents:
                return await self._respond_no_match(session_id, message)

            answer = await self._synthesizer.answer(message, documents)

            await self._history.append(
                session_id,
                HistoryMessage(
                    text=answer,
                    sender="bot",
                    timestamp=_now(),
                    sources=[doc.title for doc, _score in documents],
                    relevance="high",
                ),
            )

            return ChatResponse(
                message=answer,
                sources=[
                    SourceReference(
                        title=doc.title,
                        url=doc.url or None,
                        relevance_score=score,
                    )
                    for doc, score in documents
                ],
                relevance="high",
            )

        except Exception as exc:
            logger.exception("Error processing user message for session %s", session_id)
            await self._record_error(session_id)
            raise PipelineError("Failed to process message") from exc

    # ------------------------------------------------------------------
    # History passthrough
    # ------------------------------------------------------------------

    async def get_history(self, session_id: str) -> List[HistoryMessage]:
        return await self._history.read(session_id)

    async def clear_history(self, session_id: str) -> None:
        await self._history.clear(session_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def no_match_message(self, query: str) -> str:
        sources = self._index.sources()
        return NO_MATCH_TEMPLATE.format(
            query=query,
            article_count=len(self._index),
            sources=", ".join(sources) if sources else "no news sources yet",
        )

    async def _respond_no_match(self, session_id: str, message: str) -> ChatResponse:
        text = self.no_match_message(message)

        await self._history.append(
            session_id,
            HistoryMessage(text=text, sender="bot", timestamp=_now(), relevance="low"),
        )

        return ChatResponse(message=text, sources=[], relevance="low")

    async def _record_error(self, session_id: str) -> None:
        try:
            await self._history.append(
                session_id,
                HistoryMessage(
                    text=APOLOGY_MESSAGE,
                    sender="bot",
                    timestamp=_now(),
                    is_error=True,
                ),
            )
        except Exception:
            logger.exception("Failed to record error message for session %s", session_id)
