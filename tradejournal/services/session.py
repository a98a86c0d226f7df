"""Signed-in session: wires the cache, undo, step-up and journal service together."""

import logging
from pathlib import Path
from typing import Protocol

from tradejournal.config import settings
from tradejournal.errors import JournalError
from tradejournal.services.journal import JournalService
from tradejournal.services.notifier import Notifier
from tradejournal.services.selection import ChallengeSelection
from tradejournal.services.step_up import StepUpGuard, StepUpOutcome
from tradejournal.services.store.base import RecordStore
from tradejournal.services.sync import JournalCache
from tradejournal.services.undo import Scheduler, UndoCoordinator

logger = logging.getLogger(__name__)


class AuthProvider(Protocol):
    """Identity collaborator. Authentication itself happens elsewhere."""

    @property
    def user_id(self) -> str | None: ...

    async def sign_in(self) -> str | None: ...

    async def sign_out(self) -> None: ...


class StaticAuth:
    """AuthProvider for a user id that is already known (scripts, tests)."""

    def __init__(self, user_id: str) -> None:
        self._user_id: str | None = user_id
        self._signed_in_as = user_id

    @property
    def user_id(self) -> str | None:
        return self._user_id

    async def sign_in(self) -> str | None:
        self._user_id = self._signed_in_as
        return self._user_id

    async def sign_out(self) -> None:
        self._user_id = None


class JournalSession:
    """Everything that lives between sign-in and sign-out for one user."""

    def __init__(
        self,
        auth: AuthProvider,
        store: RecordStore,
        notifier: Notifier | None = None,
        scheduler: Scheduler | None = None,
        selection_file: Path | None = None,
    ) -> None:
        self.auth = auth
        self.store = store
        self.notifier = notifier or Notifier()
        self._scheduler = scheduler
        self._selection_file = selection_file or settings.selection_file
        self.service: JournalService | None = None
        self.is_open = False

    @property
    def journal(self) -> JournalService:
        if self.service is None:
            raise JournalError("Session is not open")
        return self.service

    @property
    def cache(self) -> JournalCache:
        return self.journal.cache

    async def open(self) -> JournalService:
        """Start the cache for the signed-in user and restore the selection."""
        if self.service is not None:
            return self.service

        user_id = self.auth.user_id or await self.auth.sign_in()
        if not user_id:
            raise JournalError("Not signed in")

        cache = JournalCache(self.store, user_id)
        try:
            loaded = await cache.start()
        except Exception as e:
            logger.error("Failed to start sync for %s: %s", user_id, e)
            self.notifier.error("Failed to connect to journal data")
            await cache.stop()
            raise JournalError(f"Could not open session: {e}") from e
        if not loaded:
            self.notifier.error("Failed to load journal data")

        selection = ChallengeSelection(user_id, self._selection_file)
        self.service = JournalService(
            store=self.store,
            cache=cache,
            undo=UndoCoordinator(self.notifier, self._scheduler),
            step_up=StepUpGuard(self.store, user_id),
            notifier=self.notifier,
            selection=selection,
        )

        restored = selection.load()
        if restored and cache.get_challenge(restored) is None and cache.last_error is None:
            logger.info("Selected challenge %s no longer exists", restored)
            selection.clear()

        self.is_open = True
        logger.info("Session opened for %s", user_id)
        return self.service

    async def close(self) -> None:
        """Commit deletes still inside their undo window and stop syncing."""
        if self.service is None:
            return
        service = self.service
        await service.undo.flush()
        await service.cache.stop()
        self.service = None
        self.is_open = False
        logger.info("Session closed for %s", service.cache.user_id)

    async def sign_out(self) -> StepUpOutcome:
        """Close the session and sign out. Requires a code when enrolled."""

        async def perform() -> None:
            await self.close()
            await self.auth.sign_out()
            self.notifier.success("Signed out")

        if self.service is None:
            await perform()
            return StepUpOutcome.EXECUTED
        return await self.service.step_up.run_with_optional_step_up(perform)
