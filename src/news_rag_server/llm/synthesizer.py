"""
Answer Synthesizer

Turns a question and the ranked documents retrieved for it into a natural
language answer. The remote generation service is tried first; on any
provider failure the synthesizer returns a templated summary built purely
from the documents already in memory, so this step cannot fail the turn.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from ..embeddings.models import Document
from ..prompts import (
    ANSWER_PROMPT_TEMPLATE,
    CONTEXT_ENTRY_TEMPLATE,
    CONTEXT_SEPARATOR,
    NO_DOCUMENTS_ANSWER,
)
from .client import GenerationClient, GenerationError

logger = logging.getLogger("newsrag.llm")

ScoredDocument = Tuple[Document, float]

FALLBACK_DOCUMENT_LIMIT = 3
FALLBACK_EXCERPT_LENGTH = 200


def build_context(documents: Sequence[ScoredDocument]) -> str:
    return CONTEXT_SEPARATOR.join(
        CONTEXT_ENTRY_TEMPLATE.format(
            number=number,
            source=doc.source,
            title=doc.title,
            content=doc.content,
        )
        for number, (doc, _score) in enumerate(documents, start=1)
    )


def build_prompt(question: str, documents: Sequence[ScoredDocument]) -> str:
    return ANSWER_PROMPT_TEMPLATE.format(
        context=build_context(documents),
        question=question,
    )


def fallback_answer(question: str, documents: Sequence[ScoredDocument]) -> str:
    """
    Deterministic summary of the top documents, used when generation fails.
    """
    if not documents:
        return NO_DOCUMENTS_ANSWER

    sources: List[str] = []
    for doc, _score in documents:
        if doc.source and doc.source not in sources:
            sources.append(doc.source)

    lines = [
        f"Based on recent news from {', '.join(sources) or 'my database'}, "
        "here's what I found about your question:\n"
    ]

    for number, (doc, _score) in enumerate(documents[:FALLBACK_DOCUMENT_LIMIT], start=1):
        lines.append(f"{number}. **{doc.title}** ({doc.source})")
        lines.append(f"{doc.content[:FALLBACK_EXCERPT_LENGTH]}...\n")

    count = len(documents)
    lines.append(
        f"This information is based on {count} relevant news "
        f"article{'s' if count > 1 else ''} from my database."
    )
    return "\n".join(lines)


class AnswerSynthesizer:
    def __init__(self, client: GenerationClient) -> None:
        self._client = client

    async def answer(self, question: str, documents: Sequence[ScoredDocument]) -> str:
        if not documents:
            return NO_DOCUMENTS_ANSWER

        try:
            return await self._client.generate(build_prompt(question, documents))
        except GenerationError as exc:
            logger.warning("Generation unavailable, using fallback answer: %s", exc)
            return fallback_answer(question, documents)
