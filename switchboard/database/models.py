"""
switchboard.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- records — JSON documents addressed by (scope, key), where scope is
  ``"global"``, ``"legacy"`` or a guild snowflake.  Backs
  :class:`~switchboard.services.persistence.SqlPersistence`.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Switchboard ORM models."""


# ---------------------------------------------------------------------------
# Record — one persisted JSON document
# ---------------------------------------------------------------------------
class Record(Base):
    """A persisted data record.

    Values are stored as JSON strings; a missing row reads as an empty
    mapping, so every record exists implicitly.
    """
    __tablename__ = "records"

    scope: Mapped[str] = mapped_column(String(32), primary_key=True)
    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_records_scope", "scope"),
    )

    def __repr__(self) -> str:
        return f"<Record scope={self.scope!r} key={self.key!r}>"
