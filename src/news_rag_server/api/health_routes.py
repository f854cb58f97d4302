from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_vector_index
from ..embeddings.index import VectorIndex

router = APIRouter(tags=["health"])

@router.get("/health")
def health(index: Annotated[VectorIndex, Depends(get_vector_index)]):
    return {"status": "ok", "documents": len(index)}
