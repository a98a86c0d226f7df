"""Optimistic delete with a time-boxed undo.

Each delete runs a small state machine:

    IDLE -> PENDING_UNDO -> REVERTED    (user pressed Undo in time)
                         -> COMMITTED   (window elapsed, remote delete succeeded)
                         -> RESTORED    (window elapsed, remote delete failed,
                                         item put back and the user told)

The item leaves the local cache immediately. The remote delete only runs when
the window elapses. Undo does not cancel the timer: it flips the state, and
the commit checks the state when it fires.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from tradejournal.config import settings
from tradejournal.services.notifier import Notice, Notifier

logger = logging.getLogger(__name__)

AsyncCallback = Callable[[], Awaitable[None]]


class DeleteState(str, Enum):
    IDLE = "idle"
    PENDING_UNDO = "pending_undo"
    REVERTED = "reverted"
    COMMITTED = "committed"
    RESTORED = "committed_with_restore"


class Scheduler(Protocol):
    """Runs an async callback after a delay. Injected so tests control time."""

    def call_later(self, delay: float, callback: AsyncCallback) -> None: ...


class AsyncioScheduler:
    """Scheduler on the running event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: AsyncCallback) -> None:
        loop = asyncio.get_running_loop()
        loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: AsyncCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for callbacks that have already started."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@dataclass
class PendingDelete:
    """One optimistic delete and where it is in its lifecycle."""

    item_id: str
    message: str
    restore_local: Callable[[], None] = field(repr=False)
    commit_remote: AsyncCallback = field(repr=False)
    restored_message: str = "Restored"
    failure_message: str = "Failed to delete"
    state: DeleteState = DeleteState.IDLE
    notice: Notice | None = None
    error: Exception | None = None


class UndoCoordinator:
    """Schedules optimistic deletes and resolves them to undo or commit."""

    def __init__(
        self,
        notifier: Notifier,
        scheduler: Scheduler | None = None,
        window_seconds: float | None = None,
    ) -> None:
        self._notifier = notifier
        self._scheduler = scheduler or AsyncioScheduler()
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.undo_window_seconds
        )
        self.pending: dict[str, PendingDelete] = {}

    def schedule(
        self,
        item_id: str,
        message: str,
        remove_local: Callable[[], None],
        restore_local: Callable[[], None],
        commit_remote: AsyncCallback,
        restored_message: str = "Restored",
        failure_message: str = "Failed to delete",
    ) -> PendingDelete:
        """Remove an item locally now and commit the remote delete after the window.

        Args:
            item_id: Identifier of the deleted item.
            message: Text of the undo notice, e.g. "Trade deleted".
            remove_local: Drops the item from the local cache.
            restore_local: Puts the item back into the local cache.
            commit_remote: Performs the remote delete.

        Returns:
            The pending delete, in state PENDING_UNDO.
        """
        pending = PendingDelete(
            item_id=item_id,
            message=message,
            restore_local=restore_local,
            commit_remote=commit_remote,
            restored_message=restored_message,
            failure_message=failure_message,
        )
        remove_local()
        pending.state = DeleteState.PENDING_UNDO
        pending.notice = self._notifier.undo_prompt(
            message, self.window_seconds, lambda: self.undo(pending)
        )
        self.pending[item_id] = pending
        self._scheduler.call_later(self.window_seconds, lambda: self._commit(pending))
        logger.info("Delete of %s pending for %.0fs", item_id, self.window_seconds)
        return pending

    def undo(self, pending: PendingDelete) -> bool:
        """Revert a pending delete. Returns False if the window already closed."""
        if pending.state != DeleteState.PENDING_UNDO:
            return False
        pending.state = DeleteState.REVERTED
        if pending.notice is not None:
            self._notifier.dismiss(pending.notice)
        self._forget(pending)
        pending.restore_local()
        self._notifier.success(pending.restored_message)
        logger.info("Delete of %s undone", pending.item_id)
        return True

    def undo_item(self, item_id: str) -> bool:
        pending = self.pending.get(item_id)
        return self.undo(pending) if pending is not None else False

    async def _commit(self, pending: PendingDelete) -> None:
        if pending.state != DeleteState.PENDING_UNDO:
            return
        # Claim the delete before awaiting so a late Undo or a flush cannot race it
        pending.state = DeleteState.COMMITTED
        if pending.notice is not None:
            self._notifier.dismiss(pending.notice)
        self._forget(pending)
        try:
            await pending.commit_remote()
            logger.info("Delete of %s committed", pending.item_id)
        except Exception as e:
            pending.state = DeleteState.RESTORED
            pending.error = e
            logger.error("Remote delete of %s failed, restoring: %s", pending.item_id, e)
            pending.restore_local()
            self._notifier.error(pending.failure_message)

    def _forget(self, pending: PendingDelete) -> None:
        if self.pending.get(pending.item_id) is pending:
            del self.pending[pending.item_id]

    async def flush(self) -> None:
        """Commit every delete still inside its window, now."""
        for pending in list(self.pending.values()):
            await self._commit(pending)
