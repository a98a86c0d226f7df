"""Local cache of a user's journal, kept in sync with the record store.

The cache is refreshed in bulk: on start, and again on every change
notification for the challenges collection (trades live beneath it, so trade
writes count). A refresh re-reads everything instead of patching. It costs a
full read but the cache cannot drift from the store through a missed update.

Between refreshes, callers mirror their own writes through the local mutation
methods (set_trades, set_challenges, ...) so the UI updates before the next
refresh lands. There is no reconciliation: the last local write wins until
the next refresh.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from tradejournal.models.challenge import Challenge
from tradejournal.models.notes import Link, Note
from tradejournal.models.trade import Trade
from tradejournal.services.aggregation import challenge_rollup
from tradejournal.services.selectors import sort_trades
from tradejournal.services.store.base import (
    CHALLENGES,
    LINKS,
    NOTES,
    RecordStore,
    Subscription,
    store_path,
    trades_path,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse_records(model: type[M], docs: dict[str, dict[str, Any]], where: str) -> list[M]:
    """Validate stored documents, skipping (and logging) malformed ones."""
    records = []
    for key, doc in docs.items():
        try:
            records.append(model.model_validate({**doc, "id": key}))
        except ValidationError as e:
            logger.warning("Skipping malformed %s record %s: %s", where, key, e.error_count())
    return records


def _newest_first(records: Iterable[M]) -> list[M]:
    return sorted(records, key=lambda r: getattr(r, "created_at", ""), reverse=True)


def with_rollup(challenge: Challenge, trades: list[Trade]) -> Challenge:
    """Return the challenge with current_balance/total_fees computed from ``trades``."""
    rollup = challenge_rollup(trades, challenge.opening_balance)
    return challenge.model_copy(
        update={"current_balance": rollup.current_balance, "total_fees": rollup.total_fees}
    )


class JournalCache:
    """Process-local mirror of one user's challenges, trades, notes and links."""

    def __init__(self, store: RecordStore, user_id: str | None) -> None:
        self._store = store
        self.user_id = user_id
        self.challenges: list[Challenge] = []
        self.trades_by_challenge: dict[str, list[Trade]] = {}
        self.notes: list[Note] = []
        self.links: list[Link] = []
        self.loading = False
        self.last_error: str | None = None
        self._generation = 0
        self._subscription: Subscription | None = None
        self._refresh_tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[], None]] = []
        # Ids removed locally whose remote delete has not landed yet
        self._hidden: set[str] = set()

    # ─── Lifecycle ──────────────────────────────────────────────

    async def start(self) -> bool:
        """Load everything, then follow remote changes."""
        ok = await self.refresh()
        if self.user_id and self._subscription is None:
            self._subscription = await self._store.subscribe(
                store_path(self.user_id, CHALLENGES), self._on_remote_change
            )
        return ok

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait until refreshes triggered by change notifications have finished."""
        while self._refresh_tasks:
            await asyncio.gather(*list(self._refresh_tasks), return_exceptions=True)

    def _on_remote_change(self, changed_path: str) -> None:
        logger.debug("Remote change at %s, refreshing", changed_path)
        task = asyncio.ensure_future(self.refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Register a callback run after every state change."""
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error("Cache listener failed: %s", e)

    # ─── Bulk refresh ───────────────────────────────────────────

    def _clear(self) -> None:
        self.challenges = []
        self.trades_by_challenge = {}
        self.notes = []
        self.links = []

    async def refresh(self) -> bool:
        """Re-read all of the user's data and swap it in atomically.

        Returns:
            True if the cache now reflects the store. False if any read
            failed, in which case the previous state is left untouched.
        """
        if not self.user_id:
            self._clear()
            self._changed()
            return True

        self._generation += 1
        generation = self._generation
        self.loading = True
        uid = self.user_id
        try:
            challenge_docs, note_docs, link_docs = await asyncio.gather(
                self._store.read_collection(store_path(uid, CHALLENGES)),
                self._store.read_collection(store_path(uid, NOTES)),
                self._store.read_collection(store_path(uid, LINKS)),
            )
            challenges = _parse_records(Challenge, challenge_docs, CHALLENGES)
            trade_docs = await asyncio.gather(
                *(self._store.read_collection(trades_path(uid, c.id)) for c in challenges)
            )
        except Exception as e:
            logger.error("Error fetching journal data for %s: %s", uid, e)
            if generation == self._generation:
                self.last_error = str(e)
                self.loading = False
            return False

        if generation != self._generation:
            # A newer refresh started while this one was reading; let it win
            logger.debug("Discarding superseded refresh %d", generation)
            return True

        trades_map: dict[str, list[Trade]] = {}
        with_rollups = []
        for challenge, docs in zip(challenges, trade_docs):
            trades = sort_trades(
                t
                for t in _parse_records(Trade, docs, f"{challenge.id}/trades")
                if t.id not in self._hidden
            )
            trades_map[challenge.id] = trades
            with_rollups.append(with_rollup(challenge, trades))

        self.challenges = _newest_first(c for c in with_rollups if c.id not in self._hidden)
        self.trades_by_challenge = trades_map
        self.notes = _newest_first(_parse_records(Note, note_docs, NOTES))
        self.links = _newest_first(_parse_records(Link, link_docs, LINKS))
        self.last_error = None
        self.loading = False
        logger.info(
            "Journal refreshed: %d challenges, %d trades, %d notes, %d links",
            len(self.challenges),
            sum(len(t) for t in trades_map.values()),
            len(self.notes),
            len(self.links),
        )
        self._changed()
        return True

    # ─── Reads ──────────────────────────────────────────────────

    def get_trades(self, challenge_id: str | None) -> list[Trade]:
        """Trades of a challenge; empty for unknown or not-yet-loaded ids."""
        if not challenge_id:
            return []
        return self.trades_by_challenge.get(challenge_id, [])

    def get_challenge(self, challenge_id: str | None) -> Challenge | None:
        for c in self.challenges:
            if c.id == challenge_id:
                return c
        return None

    def active_challenges(self) -> list[Challenge]:
        return [c for c in self.challenges if not c.is_archived]

    def archived_challenges(self) -> list[Challenge]:
        return [c for c in self.challenges if c.is_archived]

    # ─── Local mutations (memory only, never touch the store) ───

    def hide(self, record_id: str) -> None:
        """Keep a record out of refresh results while its delete is pending."""
        self._hidden.add(record_id)

    def unhide(self, record_id: str) -> None:
        self._hidden.discard(record_id)

    def set_trades(self, challenge_id: str, trades: list[Trade]) -> None:
        """Replace a challenge's trades and recompute its rollup."""
        self.trades_by_challenge = {**self.trades_by_challenge, challenge_id: list(trades)}
        self.challenges = [
            with_rollup(c, trades) if c.id == challenge_id else c for c in self.challenges
        ]
        self._changed()

    def set_challenges(self, challenges: list[Challenge]) -> None:
        """Replace the challenge list; rollups are recomputed from cached trades."""
        self.challenges = [with_rollup(c, self.get_trades(c.id)) for c in challenges]
        self._changed()

    def set_notes(self, notes: list[Note]) -> None:
        self.notes = list(notes)
        self._changed()

    def set_links(self, links: list[Link]) -> None:
        self.links = list(links)
        self._changed()
