"""
SQLAlchemy models for bksync local storage.

Local storage is a small key-value table: one row holds the current
snapshot, another the remote account identifier.
"""
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class StoredValue(Base):
    """
    A single persisted value.

    Attributes:
        key: Storage key (e.g. 'importedDataList', 'pantryId')
        value: JSON-serializable payload
        updated_at: Last time the key was written
    """
    __tablename__ = 'stored_values'

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<StoredValue(key='{self.key}')>"
