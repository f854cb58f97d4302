"""
SQLAlchemy Models

Defines the single table backing the durable key-value store. Documents,
cached embeddings, chat histories and index metadata are all stored as JSON
text values under prefixed keys with a per-key expiry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class KvEntry(Base):
    """
    One key-value record.

    `expires_at` is a naive UTC timestamp; NULL means the key never expires.
    """
    __tablename__ = "kv_entry"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_kv_entry_expires_at", "expires_at"),
    )
