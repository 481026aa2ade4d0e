"""Key-value storage model.

Provides ``StorageEntryBase``, a non-table base class.  Subclass with
``table=True`` and a custom ``__tablename__`` to keep several stores in
one database.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class StorageEntryBase(SQLModel):
    """Base fields for a durable key-value entry."""

    key: str = Field(primary_key=True)
    value: str = Field(default="")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


class StorageEntry(StorageEntryBase, table=True):
    """Default key-value table — ``deskvfs_storage``."""

    __tablename__ = "deskvfs_storage"
