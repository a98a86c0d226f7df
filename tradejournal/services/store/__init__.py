"""Record store adapters and the configured store factory."""

from tradejournal.config import settings
from tradejournal.services.store.base import (
    CHALLENGES,
    CHECKLISTS,
    LINKS,
    NOTES,
    TOTP,
    TRADES,
    RecordStore,
    Subscription,
    store_path,
    trades_path,
)
from tradejournal.services.store.memory import MemoryStore


def create_store(backend: str | None = None) -> RecordStore:
    """Build the record store selected by STORE_BACKEND."""
    backend = (backend or settings.store_backend).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "redis":
        from tradejournal.services.store.redis_store import RedisStore

        return RedisStore()
    if backend == "firebase":
        from tradejournal.services.store.firebase import FirebaseStore

        return FirebaseStore()
    raise ValueError(f"Unknown store backend: {backend}")


__all__ = [
    "CHALLENGES",
    "CHECKLISTS",
    "LINKS",
    "NOTES",
    "TOTP",
    "TRADES",
    "MemoryStore",
    "RecordStore",
    "Subscription",
    "create_store",
    "store_path",
    "trades_path",
]
