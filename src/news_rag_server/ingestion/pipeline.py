"""
News Ingestion Pipeline

Fetches articles from the configured feeds, embeds them and stores them in
the vector index.

Articles are processed in fixed-size batches: every article of a batch is
embedded and stored concurrently, and the pipeline pauses between batches to
stay within third-party rate limits. A failing article is logged and
skipped; it never aborts its batch or the run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence

from ..config import settings
from ..embeddings.index import VectorIndex
from ..embeddings.models import Document
from ..embeddings.provider import EmbeddingProvider
from .feeds import DEFAULT_NEWS_SOURCES, Article, FeedClient, NewsSource

logger = logging.getLogger("newsrag.ingest")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class IngestionResult:
    """Outcome of one ingestion run."""
    count: int
    total: int
    batches: int
    timestamp: str


class NewsIngestor:
    def __init__(
        self,
        provider: EmbeddingProvider,
        index: VectorIndex,
        feed_client: Optional[FeedClient] = None,
        sources: Optional[Sequence[NewsSource]] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._index = index
        self._feeds = feed_client or FeedClient()
        self._sources = list(sources) if sources is not None else list(DEFAULT_NEWS_SOURCES)
        self.batch_size = batch_size or settings.ingest_batch_size
        self.batch_delay = settings.ingest_batch_delay if batch_delay is None else batch_delay
        self._sleep = sleep

    async def ingest(self) -> IngestionResult:
        """Fetch every configured feed, then embed and store the articles."""
        logger.info("Starting news ingestion process...")

        articles: List[Article] = []
        for source in self._sources:
            articles.extend(await self._feeds.fetch(source))

        logger.info("Fetched %d articles from %d sources", len(articles), len(self._sources))
        return await self.ingest_articles(articles)

    async def ingest_articles(self, articles: Sequence[Article]) -> IngestionResult:
        total = len(articles)
        processed = 0
        batches = 0

        for start in range(0, total, self.batch_size):
            batch = articles[start : start + self.batch_size]
            outcomes = await asyncio.gather(*(self._process(a) for a in batch))
            batches += 1

            for ok in outcomes:
                if not ok:
                    continue
                processed += 1
                if processed % 10 == 0:
                    logger.info("Processed %d/%d articles...", processed, total)

            if start + self.batch_size < total:
                await self._sleep(self.batch_delay)

        logger.info("News ingestion completed: %d/%d articles processed", processed, total)

        return IngestionResult(
            count=processed,
            total=total,
            batches=batches,
            timestamp=_now(),
        )

    async def _process(self, article: Article) -> bool:
        try:
            result = await self._provider.embed(f"{article.title}\n\n{article.content}")
            await self._index.upsert(
                Document(
                    id=article.id,
                    title=article.title,
                    content=article.content,
                    url=article.url,
                    source=article.source,
                    published_date=article.published_date,
                    embedding=result.vector,
                    processed_at=_now(),
                )
            )
            return True
        except Exception as exc:
            logger.error("Error processing article %r: %s", article.title, exc)
            return False
