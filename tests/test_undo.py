"""Tests for the optimistic delete / undo state machine."""

import pytest
from unittest.mock import AsyncMock

from conftest import ManualScheduler
from tradejournal.services.notifier import NoticeLevel
from tradejournal.services.undo import DeleteState, UndoCoordinator


class LocalList:
    """Stand-in for a cache collection."""

    def __init__(self, items):
        self.items = list(items)

    def remover(self, item):
        return lambda: self.items.remove(item)

    def restorer(self, item):
        return lambda: self.items.append(item)


@pytest.fixture
def coordinator(notifier, scheduler) -> UndoCoordinator:
    return UndoCoordinator(notifier, scheduler, window_seconds=10)


def schedule(coordinator, local, item, commit):
    return coordinator.schedule(
        item, f"{item} deleted", local.remover(item), local.restorer(item), commit
    )


class TestUndo:
    @pytest.mark.asyncio
    async def test_undo_restores_and_never_commits(self, coordinator, scheduler, notices):
        local = LocalList(["a", "b"])
        commit = AsyncMock()

        pending = schedule(coordinator, local, "a", commit)
        assert local.items == ["b"]
        assert pending.state == DeleteState.PENDING_UNDO

        assert coordinator.undo(pending) is True
        assert sorted(local.items) == ["a", "b"]
        assert pending.state == DeleteState.REVERTED

        # Timer still fires but is a no-op
        await scheduler.advance(10)
        commit.assert_not_awaited()
        assert pending.state == DeleteState.REVERTED
        assert notices[-1].level == NoticeLevel.SUCCESS

    @pytest.mark.asyncio
    async def test_undo_via_notice_action(self, coordinator, notices):
        local = LocalList(["a"])
        schedule(coordinator, local, "a", AsyncMock())

        prompt = notices[0]
        assert prompt.action_label == "Undo"
        assert prompt.duration_seconds == 10
        assert prompt.trigger() is True
        assert local.items == ["a"]
        assert prompt.dismissed

    @pytest.mark.asyncio
    async def test_undo_item_unknown(self, coordinator):
        assert coordinator.undo_item("missing") is False


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_after_window(self, coordinator, scheduler):
        local = LocalList(["a"])
        commit = AsyncMock()
        pending = schedule(coordinator, local, "a", commit)

        await scheduler.advance(9)
        commit.assert_not_awaited()

        await scheduler.advance(1)
        commit.assert_awaited_once()
        assert pending.state == DeleteState.COMMITTED
        assert local.items == []
        assert "a" not in coordinator.pending

    @pytest.mark.asyncio
    async def test_undo_after_commit_is_rejected(self, coordinator, scheduler):
        local = LocalList(["a"])
        pending = schedule(coordinator, local, "a", AsyncMock())
        await scheduler.advance(10)

        assert coordinator.undo(pending) is False
        assert local.items == []

    @pytest.mark.asyncio
    async def test_failed_commit_restores(self, coordinator, scheduler, notices):
        local = LocalList(["a"])
        commit = AsyncMock(side_effect=RuntimeError("network down"))
        pending = schedule(coordinator, local, "a", commit)

        await scheduler.advance(10)

        assert pending.state == DeleteState.RESTORED
        assert local.items == ["a"]
        assert isinstance(pending.error, RuntimeError)
        assert notices[-1].level == NoticeLevel.ERROR

    @pytest.mark.asyncio
    async def test_flush_commits_pending(self, coordinator, scheduler):
        local = LocalList(["a", "b"])
        commit_a, commit_b = AsyncMock(), AsyncMock()
        schedule(coordinator, local, "a", commit_a)
        schedule(coordinator, local, "b", commit_b)

        await coordinator.flush()
        commit_a.assert_awaited_once()
        commit_b.assert_awaited_once()
        assert coordinator.pending == {}

        # Timers firing later do not delete twice
        await scheduler.advance(10)
        commit_a.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_independent_deletes(self, notifier):
        scheduler = ManualScheduler()
        coordinator = UndoCoordinator(notifier, scheduler, window_seconds=10)
        local = LocalList(["a", "b"])
        commit_a, commit_b = AsyncMock(), AsyncMock()
        schedule(coordinator, local, "a", commit_a)
        await scheduler.advance(5)
        schedule(coordinator, local, "b", commit_b)

        await scheduler.advance(5)
        commit_a.assert_awaited_once()
        commit_b.assert_not_awaited()
        assert coordinator.undo_item("b") is True
        assert local.items == ["b"]
