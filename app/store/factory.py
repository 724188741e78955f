"""Pick the record store backend from settings."""

from app.config import Settings
from app.store.base import RecordStore
from app.store.memory import MemoryRecordStore
from app.store.sql import SqlRecordStore


def build_store(settings: Settings) -> RecordStore:
    if settings.store_backend == "memory":
        return MemoryRecordStore()
    if settings.store_backend == "sql":
        return SqlRecordStore.from_settings(settings)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")
