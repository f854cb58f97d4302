from typing import Any, Dict, Optional
import logging

import httpx

from ..config import settings
from ..core.errors import RemoteServiceError

logger = logging.getLogger("newsrag.llm")


class GenerationError(RemoteServiceError):
    """Raised when the generation service fails or returns no candidates."""


class GenerationClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.gemini_api_key.get_secret_value()
        self.model = model or settings.generation_model
        self.base_url = (base_url or settings.generation_api_url).rstrip("/")
        self.timeout = timeout or settings.generation_timeout
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        top_k: int = 40,
        top_p: float = 0.95,
        max_output_tokens: int = 1024,
    ) -> str:
        """
        Returns the text of the first candidate, e.g. for a response of:
        {
            "candidates": [
                {"content": {"parts": [{"text": "..."}]}}
            ]
        }
        """
        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "topK": top_k,
                "topP": top_p,
                "maxOutputTokens": max_output_tokens,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/{self.model}:generateContent",
                    params={"key": self.api_key},
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            logger.error("Generation request failed (%s): %s", type(exc).__name__, exc)
            raise GenerationError(f"Generation failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise GenerationError("Generation response is not valid JSON.") from exc

        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            raise GenerationError("No response generated")

        try:
            text = candidates[0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("Malformed generation candidate") from exc

        if not isinstance(text, str) or not text.strip():
            raise GenerationError("Empty generation candidate")

        return text
