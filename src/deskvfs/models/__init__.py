"""SQLModel tables used by deskvfs."""

from deskvfs.models.storage import StorageEntry, StorageEntryBase

__all__ = ["StorageEntry", "StorageEntryBase"]
