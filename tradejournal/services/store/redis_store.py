"""Redis-backed record store.

Layout: every collection is one Redis hash keyed ``{prefix}:{collection path}``
with one JSON document per field. A document at ``users/u1/notes/n1`` lives in
hash ``{prefix}:users/u1/notes`` under field ``n1``; nested collections such as
a challenge's trades get their own hash. Every write publishes the changed
path on ``{prefix}:changes`` for subscribers.
"""

import asyncio
import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from tradejournal.config import settings
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

_RESUBSCRIBE_MIN_SECONDS = 1.0
_RESUBSCRIBE_MAX_SECONDS = 30.0


class RedisStore(RecordStore):
    """Record store on Redis hashes with pub/sub change notifications."""

    def __init__(self, redis_url: str | None = None, key_prefix: str | None = None) -> None:
        self._redis_url = redis_url or settings.redis_url
        self._prefix = key_prefix or settings.redis_key_prefix
        self._redis: aioredis.Redis | None = None
        self._listeners: set[asyncio.Task] = set()

    @property
    def changes_channel(self) -> str:
        return f"{self._prefix}:changes"

    async def _get_redis(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url, decode_responses=True,
                max_connections=10,
            )
        return self._redis

    async def close(self) -> None:
        """Stop listeners and close the Redis connection pool."""
        for task in list(self._listeners):
            task.cancel()
        if self._listeners:
            await asyncio.gather(*self._listeners, return_exceptions=True)
        self._listeners.clear()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _hash_key(self, collection_path: str) -> str:
        return f"{self._prefix}:{'/'.join(split_path(collection_path))}"

    def _locate(self, path: str) -> tuple[str, str]:
        parts = split_path(path)
        if len(parts) < 2:
            raise StoreError("Path must name a document inside a collection", path)
        return self._hash_key("/".join(parts[:-1])), parts[-1]

    async def _publish(self, r: aioredis.Redis, path: str) -> None:
        await r.publish(self.changes_channel, "/".join(split_path(path)))

    async def read(self, path: str) -> Any | None:
        key, field = self._locate(path)
        try:
            r = await self._get_redis()
            raw = await r.hget(key, field)
        except RedisError as e:
            raise StoreError(f"Redis read failed: {e}", path) from e
        return json.loads(raw) if raw else None

    async def read_collection(self, path: str) -> dict[str, dict[str, Any]]:
        try:
            r = await self._get_redis()
            raw = await r.hgetall(self._hash_key(path))
        except RedisError as e:
            raise StoreError(f"Redis read failed: {e}", path) from e
        docs: dict[str, dict[str, Any]] = {}
        for field, value in raw.items():
            try:
                doc = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("Skipping undecodable document %s/%s", path, field)
                continue
            if isinstance(doc, dict):
                docs[field] = doc
        return docs

    async def append(self, path: str, data: dict[str, Any]) -> str:
        key = generate_key()
        await self.set(f"{path}/{key}", data)
        return key

    async def update(self, path: str, data: dict[str, Any]) -> None:
        key, field = self._locate(path)
        try:
            r = await self._get_redis()
            raw = await r.hget(key, field)
            doc = json.loads(raw) if raw else {}
            for k, v in data.items():
                if v is None:
                    doc.pop(k, None)
                else:
                    doc[k] = v
            await r.hset(key, field, json.dumps(doc))
            await self._publish(r, path)
        except RedisError as e:
            raise StoreError(f"Redis update failed: {e}", path) from e

    async def set(self, path: str, data: Any) -> None:
        if data is None:
            await self.delete(path)
            return
        key, field = self._locate(path)
        try:
            r = await self._get_redis()
            await r.hset(key, field, json.dumps(data))
            await self._publish(r, path)
        except RedisError as e:
            raise StoreError(f"Redis write failed: {e}", path) from e

    async def delete(self, path: str) -> None:
        key, field = self._locate(path)
        nested = self._hash_key(path)
        try:
            r = await self._get_redis()
            await r.hdel(key, field)
            # Collections nested beneath the document (e.g. a challenge's trades)
            doomed = [nested]
            async for k in r.scan_iter(match=f"{nested}/*"):
                doomed.append(k)
            await r.delete(*doomed)
            await self._publish(r, path)
        except RedisError as e:
            raise StoreError(f"Redis delete failed: {e}", path) from e

    async def _open_pubsub(self) -> Any:
        r = await self._get_redis()
        pubsub = r.pubsub()
        await pubsub.subscribe(self.changes_channel)
        return pubsub

    async def _close_pubsub(self, pubsub: Any) -> None:
        try:
            await pubsub.unsubscribe(self.changes_channel)
            await pubsub.aclose()
        except RedisError as e:
            logger.warning("Failed to close Redis pubsub: %s", e)

    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        try:
            pubsub = await self._open_pubsub()
        except RedisError as e:
            raise StoreError(f"Redis subscribe failed: {e}", path) from e

        task = asyncio.create_task(self._listen(pubsub, path, callback))
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)

        async def _close() -> None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        return Subscription(path, _close)

    async def _listen(self, pubsub: Any, path: str, callback: ChangeCallback) -> None:
        """Forward published changes under ``path``, resubscribing with backoff.

        Changes published while the listener was down are lost, so a
        successful resubscribe is reported as a change at ``path``.
        """
        delay = _RESUBSCRIBE_MIN_SECONDS
        try:
            while True:
                if pubsub is None:
                    try:
                        pubsub = await self._open_pubsub()
                    except RedisError as e:
                        logger.warning(
                            "Redis resubscribe for %s failed: %s. Retrying in %.0fs",
                            path, e, delay,
                        )
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, _RESUBSCRIBE_MAX_SECONDS)
                        continue
                    delay = _RESUBSCRIBE_MIN_SECONDS
                    notify(callback, path)
                try:
                    async for message in pubsub.listen():
                        if message.get("type") != "message":
                            continue
                        changed = message.get("data") or ""
                        if path_affects(changed, path):
                            notify(callback, changed)
                except RedisError as e:
                    logger.warning(
                        "Redis change listener for %s dropped: %s. Resubscribing in %.0fs",
                        path, e, delay,
                    )
                await self._close_pubsub(pubsub)
                pubsub = None
                await asyncio.sleep(delay)
                delay = min(delay * 2, _RESUBSCRIBE_MAX_SECONDS)
        finally:
            if pubsub is not None:
                await self._close_pubsub(pubsub)
