"""In-process record store. Used for local runs and tests."""

import copy
import itertools
import logging
from typing import Any

from tradejournal.errors import StoreError
from tradejournal.services.store.base import (
    ChangeCallback,
    RecordStore,
    Subscription,
    generate_key,
    notify,
    path_affects,
    split_path,
)

logger = logging.getLogger(__name__)


class MemoryStore(RecordStore):
    """Nested-dict tree with the same read/write semantics as the remote stores.

    Values are deep-copied on the way in and out, so callers can never alias
    stored state.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(data) if data else {}
        self._subscribers: dict[int, tuple[str, ChangeCallback]] = {}
        self._ids = itertools.count(1)

    def _lookup(self, path: str) -> Any | None:
        node: Any = self._root
        for part in split_path(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _parent(self, path: str, create: bool) -> tuple[dict[str, Any] | None, str]:
        parts = split_path(path)
        if not parts:
            raise StoreError("Cannot write to the store root", path)
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if not create:
                    return None, parts[-1]
                child = {}
                node[part] = child
            node = child
        return node, parts[-1]

    def _changed(self, path: str) -> None:
        for watched, callback in list(self._subscribers.values()):
            if path_affects(path, watched):
                notify(callback, path)

    async def read(self, path: str) -> Any | None:
        return copy.deepcopy(self._lookup(path))

    async def read_collection(self, path: str) -> dict[str, dict[str, Any]]:
        node = self._lookup(path)
        if not isinstance(node, dict):
            return {}
        return {k: copy.deepcopy(v) for k, v in node.items() if isinstance(v, dict)}

    async def append(self, path: str, data: dict[str, Any]) -> str:
        key = generate_key()
        await self.set(f"{path}/{key}", data)
        return key

    async def update(self, path: str, data: dict[str, Any]) -> None:
        parent, leaf = self._parent(path, create=True)
        node = parent.get(leaf)
        if not isinstance(node, dict):
            node = {}
            parent[leaf] = node
        for key, value in data.items():
            if value is None:
                node.pop(key, None)
            else:
                node[key] = copy.deepcopy(value)
        self._changed(path)

    async def set(self, path: str, data: Any) -> None:
        parent, leaf = self._parent(path, create=True)
        if data is None:
            parent.pop(leaf, None)
        else:
            parent[leaf] = copy.deepcopy(data)
        self._changed(path)

    async def delete(self, path: str) -> None:
        parent, leaf = self._parent(path, create=False)
        if parent is not None:
            parent.pop(leaf, None)
        self._changed(path)

    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        sub_id = next(self._ids)
        self._subscribers[sub_id] = (path, callback)

        async def _close() -> None:
            self._subscribers.pop(sub_id, None)

        return Subscription(path, _close)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of everything stored."""
        return copy.deepcopy(self._root)
