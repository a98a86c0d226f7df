"""Firebase Realtime Database store over its REST API.

Reads and writes are plain JSON requests against ``{database_url}/{path}.json``.
Change subscriptions use the REST streaming endpoint (server-sent events).
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from tradejournal.config import settings
from tradejournal.errors import StoreError
from tradejournal.services.store.base import (
    ChangeCallback,
    RecordStore,
    Subscription,
    notify,
    split_path,
)

logger = logging.getLogger(__name__)

_RECONNECT_MIN_SECONDS = 1.0
_RECONNECT_MAX_SECONDS = 30.0


@dataclass
class StreamEvent:
    """One server-sent event from the streaming endpoint."""

    event: str
    data: Any


async def iter_stream_events(lines: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
    """Parse a server-sent event stream into events.

    An event is an ``event:`` line and a ``data:`` line, terminated by a
    blank line. Data is decoded as JSON when possible.
    """
    event = ""
    data_lines: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if event:
                raw = "\n".join(data_lines)
                try:
                    data = json.loads(raw) if raw else None
                except json.JSONDecodeError:
                    data = raw
                yield StreamEvent(event=event, data=data)
            event = ""
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value.lstrip(" ")
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)


class FirebaseStore(RecordStore):
    """Record store on the Firebase Realtime Database REST API."""

    def __init__(
        self,
        database_url: str | None = None,
        auth_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (database_url or settings.firebase_database_url).rstrip("/")
        if not self._base_url:
            raise ValueError("FIREBASE_DATABASE_URL not configured")
        self._auth_token = auth_token if auth_token is not None else settings.firebase_auth_token
        self._client = client
        self._owns_client = client is None
        self._streams: set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        return self._client

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{'/'.join(split_path(path))}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self._auth_token} if self._auth_token else {}

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        client = self._get_client()
        try:
            resp = await client.request(
                method, self._url(path), params=self._params(),
                json=body if method in ("POST", "PUT", "PATCH") else None,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"{method} returned {e.response.status_code}: {e.response.text[:200]}", path
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"{method} failed: {e}", path) from e
        if not resp.content:
            return None
        return resp.json()

    async def read(self, path: str) -> Any | None:
        return await self._request("GET", path)

    async def read_collection(self, path: str) -> dict[str, dict[str, Any]]:
        data = await self._request("GET", path)
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict)}

    async def append(self, path: str, data: dict[str, Any]) -> str:
        result = await self._request("POST", path, data)
        if not isinstance(result, dict) or "name" not in result:
            raise StoreError("Append response carried no key", path)
        return result["name"]

    async def update(self, path: str, data: dict[str, Any]) -> None:
        await self._request("PATCH", path, data)

    async def set(self, path: str, data: Any) -> None:
        await self._request("PUT", path, data)

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path)

    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        task = asyncio.create_task(self._stream(path, callback))
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)

        async def _close() -> None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        return Subscription(path, _close)

    async def _stream(self, path: str, callback: ChangeCallback) -> None:
        """Follow the event stream for a path, reconnecting with backoff.

        Every connection opens with a ``put`` of the current snapshot. The
        first one is skipped; after a reconnect it is reported as a change at
        ``path`` since writes may have landed while the stream was down.
        """
        delay = _RECONNECT_MIN_SECONDS
        base = "/".join(split_path(path))
        client = self._get_client()
        skip_snapshot = True
        while True:
            seen_snapshot = False
            try:
                async with client.stream(
                    "GET", self._url(path), params=self._params(),
                    headers={"Accept": "text/event-stream"},
                    timeout=httpx.Timeout(settings.http_timeout_seconds, read=None),
                ) as resp:
                    resp.raise_for_status()
                    delay = _RECONNECT_MIN_SECONDS
                    async for ev in iter_stream_events(resp.aiter_lines()):
                        if ev.event in ("put", "patch"):
                            if not seen_snapshot and ev.event == "put":
                                seen_snapshot = True
                                if skip_snapshot:
                                    skip_snapshot = False
                                else:
                                    notify(callback, base)
                                continue
                            sub = ev.data.get("path", "/") if isinstance(ev.data, dict) else "/"
                            notify(callback, "/".join([base, *split_path(sub)]))
                        elif ev.event in ("cancel", "auth_revoked"):
                            logger.error("Stream for %s ended by server: %s", path, ev.event)
                            return
            except asyncio.CancelledError:
                raise
            except httpx.HTTPError as e:
                logger.warning("Stream for %s dropped: %s. Reconnecting in %.0fs", path, e, delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, _RECONNECT_MAX_SECONDS)

    async def close(self) -> None:
        for task in list(self._streams):
            task.cancel()
        if self._streams:
            await asyncio.gather(*self._streams, return_exceptions=True)
        self._streams.clear()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
