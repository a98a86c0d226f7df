"""Tests for the Firebase REST store, using httpx's mock transport."""

import asyncio
import json

import httpx
import pytest

from tradejournal.errors import StoreError
from tradejournal.services.store import firebase
from tradejournal.services.store.firebase import FirebaseStore, iter_stream_events

BASE = "https://journal-test.firebaseio.com"


def make_store(handler) -> FirebaseStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FirebaseStore(database_url=BASE, auth_token="tok", client=client)


async def lines(*items):
    for item in items:
        yield item


class TestRequests:
    @pytest.mark.asyncio
    async def test_read_collection(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"n1": {"title": "a"}, "bad": "scalar"})

        store = make_store(handler)
        docs = await store.read_collection("users/u1/notes")

        assert docs == {"n1": {"title": "a"}}
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/users/u1/notes.json"
        assert seen[0].url.params["auth"] == "tok"

    @pytest.mark.asyncio
    async def test_read_null(self):
        store = make_store(lambda r: httpx.Response(200, json=None))
        assert await store.read_collection("users/u1/notes") == {}
        assert await store.read("users/u1/totp") is None

    @pytest.mark.asyncio
    async def test_append_returns_generated_name(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append((request.method, json.loads(request.content)))
            return httpx.Response(200, json={"name": "-Nabc"})

        store = make_store(handler)
        key = await store.append("users/u1/notes", {"title": "a"})
        assert key == "-Nabc"
        assert bodies == [("POST", {"title": "a"})]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "op, method",
        [("update", "PATCH"), ("set", "PUT")],
    )
    async def test_writes(self, op, method):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            return httpx.Response(200, json={"title": "x"})

        store = make_store(handler)
        await getattr(store, op)("users/u1/notes/n1", {"title": "x"})
        assert seen == [method]

    @pytest.mark.asyncio
    async def test_delete(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(200, content=b"null")

        store = make_store(handler)
        await store.delete("users/u1/notes/n1")
        assert seen == [("DELETE", "/users/u1/notes/n1.json")]

    @pytest.mark.asyncio
    async def test_http_error_becomes_store_error(self):
        store = make_store(lambda r: httpx.Response(401, json={"error": "Permission denied"}))
        with pytest.raises(StoreError) as exc:
            await store.read("users/u1/notes")
        assert exc.value.path == "users/u1/notes"
        assert "401" in str(exc.value)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_store_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        store = make_store(handler)
        with pytest.raises(StoreError):
            await store.set("users/u1/notes/n1", {"title": "x"})

    def test_requires_database_url(self):
        with pytest.raises(ValueError):
            FirebaseStore(database_url="", client=httpx.AsyncClient())


class TestEventStream:
    @pytest.mark.asyncio
    async def test_parse_events(self):
        events = [
            ev
            async for ev in iter_stream_events(
                lines(
                    "event: put",
                    'data: {"path": "/", "data": {"a": 1}}',
                    "",
                    ": keep-alive comment",
                    "event: keep-alive",
                    "data: null",
                    "",
                    "event: patch",
                    'data: {"path": "/c1", "data": {"name": "x"}}',
                    "",
                )
            )
        ]
        assert [e.event for e in events] == ["put", "keep-alive", "patch"]
        assert events[0].data == {"path": "/", "data": {"a": 1}}
        assert events[1].data is None
        assert events[2].data["path"] == "/c1"

    @pytest.mark.asyncio
    async def test_subscribe_skips_initial_snapshot(self):
        body = (
            'event: put\ndata: {"path": "/", "data": {}}\n\n'
            'event: put\ndata: {"path": "/c1/trades/t1", "data": {"profit": 5}}\n\n'
        ).encode()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["accept"] == "text/event-stream"
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=body
            )

        store = make_store(handler)
        changed = []
        got_change = asyncio.Event()

        def on_change(path):
            changed.append(path)
            got_change.set()

        sub = await store.subscribe("users/u1/challenges", on_change)
        await asyncio.wait_for(got_change.wait(), timeout=2)
        await sub.close()
        await store.close()

        assert changed[0] == "users/u1/challenges/c1/trades/t1"

    @pytest.mark.asyncio
    async def test_reconnect_snapshot_reports_change(self, monkeypatch):
        monkeypatch.setattr(firebase, "_RECONNECT_MIN_SECONDS", 0)
        snapshots = [
            {},
            {"c1": {"trades": {"t9": {"profit": 5}}}},
        ]
        connections = []

        def handler(request: httpx.Request) -> httpx.Response:
            snapshot = snapshots[min(len(connections), len(snapshots) - 1)]
            connections.append(request)
            body = f"event: put\ndata: {json.dumps({'path': '/', 'data': snapshot})}\n\n"
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=body.encode()
            )

        store = make_store(handler)
        changed = []
        got_change = asyncio.Event()

        def on_change(path):
            changed.append(path)
            got_change.set()

        sub = await store.subscribe("users/u1/challenges", on_change)
        await asyncio.wait_for(got_change.wait(), timeout=2)
        await sub.close()
        await store.close()

        # The first connection's snapshot is not a change; later ones are
        assert len(connections) >= 2
        assert changed[0] == "users/u1/challenges"
