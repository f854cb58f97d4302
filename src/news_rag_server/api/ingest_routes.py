"""
Ingestion Routes

Manual trigger for a news ingestion run (admin / testing). The run is
awaited; the response reports how many articles were embedded and stored.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends

from .models import IngestResponse
from .dependencies import get_ingestor
from ..ingestion.pipeline import NewsIngestor

router = APIRouter(tags=["ingestion"])


@router.post(
    "/ingest-news",
    response_model=IngestResponse,
    summary="Fetch, embed and index the configured news feeds",
)
async def ingest_news(
    ingestor: Annotated[NewsIngestor, Depends(get_ingestor)],
) -> IngestResponse:
    result = await ingestor.ingest()
    return IngestResponse(
        message="News ingestion completed",
        articles_processed=result.count,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
