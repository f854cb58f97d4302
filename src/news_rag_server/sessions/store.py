"""
Session History Store

Durable conversation history storage for chat sessions.

This module provides the session-scoped history that every chat turn reads
and appends to.

Design choices
--------------
- One key per session (`chat:<sessionId>`) holding the whole history as JSON.
- Sliding window: each session keeps at most `max_messages` most recent
  messages; the oldest are dropped first.
- Sliding expiry: every write resets the key's TTL, so sessions are evicted
  after a period of inactivity rather than a fixed time after creation.
- Best-effort reads: a missing, expired, malformed or unreachable history is
  an empty history, never an error.
- Writes propagate `StorageError`; the caller decides whether a failed write
  is fatal.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import List, Optional

from pydantic import ValidationError as ModelValidationError

from ..api.models import HistoryMessage
from ..config import settings
from ..core.errors import StorageError
from ..db.kv_store import KeyValueStore

logger = logging.getLogger("newsrag.sessions")

SESSION_KEY_PREFIX = "chat:"


class SessionHistoryStore:
    """
    Key-value backed store mapping session IDs to ordered lists of
    HistoryMessage objects.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        max_messages_per_session: Optional[int] = None,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        """
        Initialize a new SessionHistoryStore.

        Parameters
        ----------
        kv : KeyValueStore
            Durable key-value store.

        max_messages_per_session : Optional[int]
            Maximum number of most recent messages kept per session.
            Defaults to settings.max_history.

        ttl_seconds : Optional[int]
            Inactivity expiry for a session. Defaults to settings.chat_history_ttl.
        """
        self._kv = kv
        self._max_messages_per_session = (
            settings.max_history if max_messages_per_session is None else max_messages_per_session
        )
        self._ttl_seconds = settings.chat_history_ttl if ttl_seconds is None else ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def read(self, session_id: str) -> List[HistoryMessage]:
        """
        Return the message history for a given session ID.

        Returns
        -------
        List[HistoryMessage]
            Messages in chronological order. Empty list if the session is
            unknown, expired, unreadable or stored in an unexpected format.
        """
        try:
            return await self._load(session_id)
        except StorageError as exc:
            logger.error("Error getting chat history for %s: %s", session_id, exc)
            return []

    async def _load(self, session_id: str) -> List[HistoryMessage]:
        # Malformed history reads as empty; StorageError propagates.
        raw = await self._kv.get(self._key(session_id))
        if not raw:
            return []

        try:
            records = json.loads(raw)
            if not isinstance(records, list):
                raise ValueError("history is not a list")
            return [HistoryMessage.model_validate(r) for r in records]
        except (ValueError, ModelValidationError) as exc:
            logger.warning("Discarding malformed chat history for %s: %s", session_id, exc)
            return []

    async def append(self, session_id: str, message: HistoryMessage) -> HistoryMessage:
        """
        Append a message to the session's history and reset its expiry.

        A unique id is assigned if the message has none.

        Returns
        -------
        HistoryMessage
            The message as stored.

        Raises
        ------
        StorageError
            If the existing history cannot be read or the new one written.
        """
        stored = message if message.id else message.model_copy(update={"id": str(uuid.uuid4())})

        history = await self._load(session_id)
        history.append(stored)

        # Keep only the most recent N messages
        limit = self._max_messages_per_session
        trimmed = history[-limit:] if limit > 0 else []

        payload = json.dumps(
            [m.model_dump(mode="json", by_alias=True, exclude_none=True) for m in trimmed]
        )
        await self._kv.set(self._key(session_id), payload, self._ttl_seconds)

        return stored

    async def clear(self, session_id: str) -> None:
        """
        Remove all history for a given session ID.

        Raises
        ------
        StorageError
            If the history cannot be deleted.
        """
        await self._kv.delete(self._key(session_id))
