"""Tests for the Redis store with a mocked client."""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from tradejournal.errors import StoreError
from tradejournal.services.store import redis_store
from tradejournal.services.store.redis_store import RedisStore


def make_store(mock_redis) -> RedisStore:
    store = RedisStore(redis_url="redis://test:6379/0", key_prefix="tj")
    store._redis = mock_redis
    return store


class TestRedisStore:
    @pytest.mark.asyncio
    async def test_read_collection_decodes_documents(self):
        mock_redis = AsyncMock()
        mock_redis.hgetall.return_value = {
            "n1": json.dumps({"title": "a"}),
            "broken": "{not json",
            "scalar": "5",
        }
        store = make_store(mock_redis)

        docs = await store.read_collection("users/u1/notes")

        mock_redis.hgetall.assert_awaited_once_with("tj:users/u1/notes")
        assert docs == {"n1": {"title": "a"}}

    @pytest.mark.asyncio
    async def test_read_document(self):
        mock_redis = AsyncMock()
        mock_redis.hget.return_value = json.dumps({"secret": "S", "enabled": True})
        store = make_store(mock_redis)

        doc = await store.read("users/u1/totp")

        mock_redis.hget.assert_awaited_once_with("tj:users/u1", "totp")
        assert doc["enabled"] is True

    @pytest.mark.asyncio
    async def test_set_writes_field_and_publishes(self):
        mock_redis = AsyncMock()
        store = make_store(mock_redis)

        await store.set("users/u1/notes/n1", {"title": "a"})

        mock_redis.hset.assert_awaited_once_with("tj:users/u1/notes", "n1", '{"title": "a"}')
        mock_redis.publish.assert_awaited_once_with("tj:changes", "users/u1/notes/n1")

    @pytest.mark.asyncio
    async def test_update_merges(self):
        mock_redis = AsyncMock()
        mock_redis.hget.return_value = json.dumps({"title": "a", "content": "b"})
        store = make_store(mock_redis)

        await store.update("users/u1/notes/n1", {"title": "x", "content": None})

        _, _, written = mock_redis.hset.await_args.args
        assert json.loads(written) == {"title": "x"}

    @pytest.mark.asyncio
    async def test_append_generates_key(self):
        mock_redis = AsyncMock()
        store = make_store(mock_redis)

        key = await store.append("users/u1/notes", {"title": "a"})

        assert len(key) == 20
        assert mock_redis.hset.await_args.args[1] == key

    @pytest.mark.asyncio
    async def test_delete_removes_nested_collections(self):
        async def scan(match):
            yield "tj:users/u1/challenges/c1/trades"

        mock_redis = AsyncMock()
        mock_redis.scan_iter = MagicMock(side_effect=scan)
        store = make_store(mock_redis)

        await store.delete("users/u1/challenges/c1")

        mock_redis.hdel.assert_awaited_once_with("tj:users/u1/challenges", "c1")
        mock_redis.delete.assert_awaited_once_with(
            "tj:users/u1/challenges/c1", "tj:users/u1/challenges/c1/trades"
        )
        mock_redis.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_error_becomes_store_error(self):
        mock_redis = AsyncMock()
        mock_redis.hgetall.side_effect = RedisConnectionError("down")
        store = make_store(mock_redis)

        with pytest.raises(StoreError):
            await store.read_collection("users/u1/notes")

    @pytest.mark.asyncio
    async def test_document_path_required(self):
        store = make_store(AsyncMock())
        with pytest.raises(StoreError):
            await store.set("users", {"a": 1})

    @pytest.mark.asyncio
    async def test_close(self):
        mock_redis = AsyncMock()
        store = make_store(mock_redis)
        await store.close()
        mock_redis.aclose.assert_awaited_once()
        assert store._redis is None


def make_pubsub(listen) -> MagicMock:
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.listen = MagicMock(side_effect=listen)
    return pubsub


class TestChangeListener:
    @pytest.mark.asyncio
    async def test_forwards_changes_under_path(self):
        async def listen():
            yield {"type": "subscribe", "data": 1}
            yield {"type": "message", "data": "users/u2/notes/n1"}
            yield {"type": "message", "data": "users/u1/challenges/c1"}
            await asyncio.Event().wait()

        pubsub = make_pubsub(listen)
        mock_redis = AsyncMock()
        mock_redis.pubsub = MagicMock(return_value=pubsub)
        store = make_store(mock_redis)
        changed = []
        got_change = asyncio.Event()

        def on_change(path):
            changed.append(path)
            got_change.set()

        sub = await store.subscribe("users/u1/challenges", on_change)
        await asyncio.wait_for(got_change.wait(), timeout=2)
        await sub.close()

        assert changed == ["users/u1/challenges/c1"]
        pubsub.subscribe.assert_awaited_once_with("tj:changes")
        pubsub.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resubscribes_after_drop_and_reports_change(self, monkeypatch):
        monkeypatch.setattr(redis_store, "_RESUBSCRIBE_MIN_SECONDS", 0)

        async def dropped():
            raise RedisConnectionError("connection lost")
            yield

        async def live():
            yield {"type": "message", "data": "users/u1/challenges/c1/trades/t9"}
            await asyncio.Event().wait()

        first, second = make_pubsub(dropped), make_pubsub(live)
        mock_redis = AsyncMock()
        mock_redis.pubsub = MagicMock(side_effect=[first, second])
        store = make_store(mock_redis)
        changed = []
        done = asyncio.Event()

        def on_change(path):
            changed.append(path)
            if len(changed) == 2:
                done.set()

        sub = await store.subscribe("users/u1/challenges", on_change)
        await asyncio.wait_for(done.wait(), timeout=2)
        await sub.close()

        # Writes missed while disconnected surface as a change at the watched path
        assert changed == ["users/u1/challenges", "users/u1/challenges/c1/trades/t9"]
        first.aclose.assert_awaited_once()
        second.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_subscribe_failure_raises_store_error(self):
        pubsub = make_pubsub(None)
        pubsub.subscribe.side_effect = RedisConnectionError("down")
        mock_redis = AsyncMock()
        mock_redis.pubsub = MagicMock(return_value=pubsub)
        store = make_store(mock_redis)

        with pytest.raises(StoreError):
            await store.subscribe("users/u1/challenges", lambda path: None)
