"""Tests for the local journal cache."""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from conftest import USER
from tradejournal.models.trade import Direction, Trade
from tradejournal.services.store.memory import MemoryStore
from tradejournal.services.sync import JournalCache


class TestRefresh:
    @pytest.mark.asyncio
    async def test_loads_everything_with_rollups(self, store):
        cache = JournalCache(store, USER)
        assert await cache.refresh() is True

        # Newest challenge first
        assert [c.id for c in cache.challenges] == ["c1", "c0"]
        c1 = cache.get_challenge("c1")
        assert c1.current_balance == 10060
        assert c1.total_fees == 4
        # Trades newest date first
        assert [t.id for t in cache.get_trades("c1")] == ["t2", "t1"]
        assert [n.id for n in cache.notes] == ["n1"]
        assert [lk.id for lk in cache.links] == ["l1"]
        assert cache.loading is False
        assert cache.last_error is None

    @pytest.mark.asyncio
    async def test_legacy_archived_spelling(self, store):
        cache = JournalCache(store, USER)
        await cache.refresh()
        assert [c.id for c in cache.archived_challenges()] == ["c0"]
        assert [c.id for c in cache.active_challenges()] == ["c1"]

    @pytest.mark.asyncio
    async def test_get_trades_unknown_is_empty(self, store):
        cache = JournalCache(store, USER)
        assert cache.get_trades("c1") == []
        await cache.refresh()
        assert cache.get_trades("nope") == []
        assert cache.get_trades(None) == []
        assert cache.get_trades("c0") == []

    @pytest.mark.asyncio
    async def test_no_user_clears_state(self, store):
        cache = JournalCache(store, USER)
        await cache.refresh()
        cache.user_id = None
        assert await cache.refresh() is True
        assert cache.challenges == []
        assert cache.notes == []

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_state(self, store):
        cache = JournalCache(store, USER)
        await cache.refresh()
        before = list(cache.challenges)

        with patch.object(store, "read_collection", new_callable=AsyncMock) as mock_read:
            mock_read.side_effect = RuntimeError("offline")
            assert await cache.refresh() is False

        assert cache.challenges == before
        assert cache.get_trades("c1")
        assert cache.last_error == "offline"
        assert cache.loading is False

    @pytest.mark.asyncio
    async def test_initial_failure_leaves_empty(self, store):
        cache = JournalCache(store, USER)
        with patch.object(store, "read_collection", new_callable=AsyncMock) as mock_read:
            mock_read.side_effect = RuntimeError("offline")
            assert await cache.refresh() is False
        assert cache.challenges == []

    @pytest.mark.asyncio
    async def test_malformed_records_are_skipped(self):
        store = MemoryStore(
            {
                "users": {
                    USER: {
                        "challenges": {
                            "ok": {"name": "A", "openingBalance": 100, "trades": {
                                "t1": {"date": "2024-01-01", "profit": "12.5"},
                                "bad": {"pair": "no date"},
                            }},
                        },
                        "notes": {"n1": {"title": ["not", "a", "string"]}},
                    }
                }
            }
        )
        cache = JournalCache(store, USER)
        assert await cache.refresh() is True
        assert [t.id for t in cache.get_trades("ok")] == ["t1"]
        assert cache.get_challenge("ok").current_balance == 112.5
        assert cache.notes == []

    @pytest.mark.asyncio
    async def test_loosely_typed_trades_still_count(self):
        store = MemoryStore(
            {
                "users": {
                    USER: {
                        "challenges": {
                            "c1": {"name": "A", "openingBalance": 1000, "trades": {
                                "t1": {"date": "2024-01-01", "profit": 50, "direction": "buy"},
                                "t2": {"date": "2024-01-02", "profit": 25, "direction": "Sell"},
                                "t3": {"date": "2024-01-03", "profit": 10, "direction": "SELL",
                                       "pair": None, "createdAt": None},
                                "t4": {"date": "  ", "profit": 99},
                            }},
                        },
                    }
                }
            }
        )
        cache = JournalCache(store, USER)
        assert await cache.refresh() is True

        trades = {t.id: t for t in cache.get_trades("c1")}
        assert set(trades) == {"t1", "t2", "t3"}
        assert trades["t1"].direction == Direction.BUY
        assert trades["t3"].direction == Direction.SELL
        assert trades["t3"].pair == ""
        assert cache.get_challenge("c1").current_balance == 1085

    @pytest.mark.asyncio
    async def test_superseded_refresh_is_discarded(self, store):
        cache = JournalCache(store, USER)
        release = asyncio.Event()
        real_read = store.read_collection

        async def stale_read(path):
            snapshot = await real_read(path)
            await release.wait()
            return snapshot

        with patch.object(store, "read_collection", side_effect=stale_read):
            first = asyncio.ensure_future(cache.refresh())
            for _ in range(5):
                await asyncio.sleep(0)
        # The second refresh reads the store directly and wins
        await store.set(f"users/{USER}/notes/n2", {"title": "new", "createdAt": "2025"})
        assert await cache.refresh() is True
        release.set()
        assert await first is True

        assert [n.id for n in cache.notes] == ["n2", "n1"]


class TestLiveUpdates:
    @pytest.mark.asyncio
    async def test_trade_write_triggers_refresh(self, store):
        cache = JournalCache(store, USER)
        await cache.start()

        await store.set(
            f"users/{USER}/challenges/c1/trades/t3",
            {"date": "2024-03-06", "profit": -10, "createdAt": "2024-03-06T10:00:00.000Z"},
        )
        await cache.wait_idle()

        assert [t.id for t in cache.get_trades("c1")] == ["t3", "t2", "t1"]
        assert cache.get_challenge("c1").current_balance == 10050
        await cache.stop()

    @pytest.mark.asyncio
    async def test_notes_write_does_not_trigger(self, store):
        cache = JournalCache(store, USER)
        await cache.start()
        with patch.object(cache, "refresh", new_callable=AsyncMock) as mock_refresh:
            await store.set(f"users/{USER}/notes/n9", {"title": "x"})
            await cache.wait_idle()
            mock_refresh.assert_not_awaited()
        await cache.stop()

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self, store):
        cache = JournalCache(store, USER)
        await cache.start()
        await cache.stop()

        await store.delete(f"users/{USER}/challenges/c1")
        await cache.wait_idle()
        assert cache.get_challenge("c1") is not None

    @pytest.mark.asyncio
    async def test_hidden_records_stay_out_of_refresh(self, store):
        cache = JournalCache(store, USER)
        cache.hide("t1")
        cache.hide("c0")
        await cache.refresh()
        assert [t.id for t in cache.get_trades("c1")] == ["t2"]
        assert cache.get_challenge("c0") is None

        cache.unhide("t1")
        await cache.refresh()
        assert len(cache.get_trades("c1")) == 2


class TestLocalMutations:
    @pytest.mark.asyncio
    async def test_set_trades_recomputes_rollup(self, store):
        cache = JournalCache(store, USER)
        await cache.refresh()

        trades = cache.get_trades("c1") + [Trade(date="2024-03-07", profit=100, fees=3)]
        cache.set_trades("c1", trades)

        c1 = cache.get_challenge("c1")
        assert c1.current_balance == 10160
        assert c1.total_fees == 7
        # The store is untouched
        assert len(await store.read_collection(f"users/{USER}/challenges/c1/trades")) == 2

    @pytest.mark.asyncio
    async def test_set_challenges_keeps_rollups(self, store):
        cache = JournalCache(store, USER)
        await cache.refresh()
        c1 = cache.get_challenge("c1").model_copy(update={"current_balance": None})
        cache.set_challenges([c1])
        assert cache.get_challenge("c1").current_balance == 10060

    @pytest.mark.asyncio
    async def test_listeners_are_told(self, store):
        cache = JournalCache(store, USER)
        calls = []
        cache.add_listener(lambda: calls.append(1))
        await cache.refresh()
        cache.set_notes([])
        assert len(calls) == 2
