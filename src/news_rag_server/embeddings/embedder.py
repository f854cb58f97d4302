"""
Embedding Client

This module implements the remote embedding client used by the embedding
provider. It talks to a Jina-compatible `/v1/embeddings` endpoint (OpenAI
style request and response shape) and is responsible for:

- Bounded-timeout transport
- Network and transport error isolation
- Strict response validation, including vector dimensionality

The client performs no caching and no fallback; both live in
`EmbeddingProvider`.
"""

from __future__ import annotations

from typing import List, Optional, Sequence
import logging
import httpx

from ..config import settings
from ..core.errors import RemoteServiceError

logger = logging.getLogger("newsrag.embedder")


class EmbeddingError(RemoteServiceError):
    """Raised when embedding generation fails."""


class RemoteEmbedder:
    """
    Asynchronous embedding generator backed by a remote HTTP service.

    The class is stateless apart from its configuration and is safe to reuse
    across requests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize a RemoteEmbedder.

        Parameters
        ----------
        api_key : Optional[str]
            Override for the API key. Defaults to settings.jina_api_key.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Embeddings endpoint. Defaults to settings.embedding_api_url.

        dimensions : Optional[int]
            Expected vector length. Defaults to settings.embedding_dimensions.

        timeout : Optional[float]
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, mainly for tests.
        """
        self.api_key = api_key if api_key is not None else settings.jina_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_api_url
        self.dimensions = settings.embedding_dimensions if dimensions is None else dimensions
        self.timeout = timeout or settings.embedding_timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            Input text strings.

        Returns
        -------
        List[List[float]]
            One embedding per input, in input order.

        Raises
        ------
        EmbeddingError
            If the request fails, times out, or the response is malformed.
        """
        if not texts:
            return []

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "input": list(texts),
            "dimensions": self.dimensions,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            logger.error(
                "Embedding request failed (%s): batch size=%d, error=%s",
                type(exc).__name__,
                len(texts),
                str(exc),
            )
            raise EmbeddingError(
                f"Embedding generation failed: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        embeddings = self._extract_embeddings(data)
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, received {len(embeddings)}."
            )

        return embeddings

    async def embed_one(self, text: str) -> List[float]:
        return (await self.embed([text]))[0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embeddings(self, data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        Expected:
            { "data": [ {"embedding": [...]}, ... ] }

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure or dimensionality.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            if len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding at index {index} has {len(emb)} dimensions, "
                    f"expected {self.dimensions}."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
