"""
Stats Routes

Exposes a diagnostics snapshot of the vector index.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_vector_index
from ..embeddings.index import VectorIndex
from ..embeddings.models import IndexStats

router = APIRouter(tags=["stats"])


@router.get(
    "/stats",
    response_model=IndexStats,
    summary="Vector index statistics",
)
async def get_stats(
    index: Annotated[VectorIndex, Depends(get_vector_index)],
) -> IndexStats:
    return await index.stats()
