"""
Document Model - Generic Keyed Record Storage
=============================================

Purpose
-------
Backs the SQL document store. Every record of every collection (``users``,
``quests``, ``quest_completions``, ``quest_boards``) is one row keyed by
``(collection, key)`` with its fields held in a JSON column.

Schema Design
-------------
- Composite primary key makes create-if-absent a single
  ``INSERT ... ON CONFLICT DO NOTHING``
- ``SELECT ... FOR UPDATE`` on a row serializes concurrent writers of the
  same record (PostgreSQL; SQLite serializes writers database-wide)
- ``data`` is JSONB on PostgreSQL and JSON elsewhere
- ``version`` increments on every update for audit/debugging
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import JSON, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, TimestampMixin


class Document(Base, TimestampMixin):
    """One record in one collection."""

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_collection_updated", "collection", "updated_at"),
    )

    collection: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Logical collection name (users, quest_completions, ...)",
    )

    key: Mapped[str] = mapped_column(
        String(300),
        primary_key=True,
        comment="Record key within the collection",
    )

    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
        comment="Record fields",
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
        doc="Incremented on every update",
    )

    def __repr__(self) -> str:
        return (
            f"<Document("
            f"collection='{self.collection}', "
            f"key='{self.key}', "
            f"version={self.version}"
            f")>"
        )
