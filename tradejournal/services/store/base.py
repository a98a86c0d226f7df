"""Record store interface: a hierarchical key-value store scoped per user.

Paths look like ``users/{uid}/{collection}/{itemId}``. Trades nest under their
challenge (``users/{uid}/challenges/{id}/trades/{tradeId}``), so a write to a
trade is also a change to the challenges collection.
"""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

CHALLENGES = "challenges"
TRADES = "trades"
NOTES = "notes"
LINKS = "links"
CHECKLISTS = "checklists"
TOTP = "totp"

ChangeCallback = Callable[[str], None]

# Same alphabet and layout as Firebase push ids: 8 time chars + 12 random chars,
# so generated keys sort by creation time.
_PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


def generate_key() -> str:
    """Generate a chronologically sortable 20-character record key."""
    now = int(time.time() * 1000)
    time_chars = []
    for _ in range(8):
        time_chars.append(_PUSH_CHARS[now % 64])
        now //= 64
    random_chars = "".join(secrets.choice(_PUSH_CHARS) for _ in range(12))
    return "".join(reversed(time_chars)) + random_chars


def store_path(user_id: str, *parts: str) -> str:
    """Build a path under the user's root.

    Raises:
        ValueError: If there is no user or a path segment is empty.
    """
    if not user_id:
        raise ValueError("No authenticated user")
    if any(not p for p in parts):
        raise ValueError(f"Empty path segment in {parts!r}")
    return "/".join(("users", user_id) + parts)


def trades_path(user_id: str, challenge_id: str) -> str:
    return store_path(user_id, CHALLENGES, challenge_id, TRADES)


def split_path(path: str) -> list[str]:
    return [p for p in path.strip("/").split("/") if p]


def path_affects(changed: str, watched: str) -> bool:
    """True when a write at ``changed`` alters the data seen at ``watched``.

    That is the case when one path is the other or an ancestor of it.
    """
    a = split_path(changed)
    b = split_path(watched)
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class Subscription:
    """Handle returned by subscribe(); close() stops notifications."""

    def __init__(self, path: str, close: Callable[[], Awaitable[None]]) -> None:
        self.path = path
        self._close = close
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._close()


class RecordStore(ABC):
    """Async hierarchical key-value store.

    The store never guarantees ordering; callers sort after reading.
    All methods raise StoreError on failure.
    """

    @abstractmethod
    async def read(self, path: str) -> Any | None:
        """Read the value at a path, or None if nothing is stored there."""

    @abstractmethod
    async def read_collection(self, path: str) -> dict[str, dict[str, Any]]:
        """Read every child document of a collection, keyed by id."""

    @abstractmethod
    async def append(self, path: str, data: dict[str, Any]) -> str:
        """Add a document under a collection with a generated key. Returns the key."""

    @abstractmethod
    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Merge fields into the document at a path. None values remove fields."""

    @abstractmethod
    async def set(self, path: str, data: Any) -> None:
        """Replace the value at a path."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the value at a path together with everything beneath it."""

    @abstractmethod
    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        """Call ``callback(changed_path)`` after any write under ``path``."""

    async def close(self) -> None:
        """Release connections. No-op by default."""


def notify(callback: ChangeCallback, changed: str) -> None:
    """Invoke a change callback, logging instead of propagating failures."""
    try:
        callback(changed)
    except Exception as e:
        logger.error("Change callback failed for %s: %s", changed, e)
