"""User actions on the journal.

Each method performs the store write and mirrors it into the local cache, so
views update without waiting for the next refresh. Trade and challenge
deletes go through the undo coordinator; sensitive actions go through the
step-up guard and return its outcome.
"""

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from pydantic import ValidationError

from tradejournal.errors import JournalError, JournalWriteError
from tradejournal.models.base import utc_now_iso
from tradejournal.models.challenge import Challenge, ChallengeInput, ChallengeStatus
from tradejournal.models.checklist import Checklist, ChecklistItem
from tradejournal.models.notes import Link, LinkInput, Note, NoteInput
from tradejournal.models.trade import Trade, TradeInput
from tradejournal.services.checklist_tree import ChecklistTree
from tradejournal.services.notifier import Notifier
from tradejournal.services.selection import ChallengeSelection
from tradejournal.services.selectors import sort_trades
from tradejournal.services.step_up import StepUpGuard, StepUpOutcome
from tradejournal.services.store.base import (
    CHALLENGES,
    CHECKLISTS,
    LINKS,
    NOTES,
    RecordStore,
    store_path,
    trades_path,
)
from tradejournal.services.sync import JournalCache
from tradejournal.services.undo import PendingDelete, UndoCoordinator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JournalService:
    """Journal operations for one signed-in user."""

    def __init__(
        self,
        store: RecordStore,
        cache: JournalCache,
        undo: UndoCoordinator,
        step_up: StepUpGuard,
        notifier: Notifier,
        selection: ChallengeSelection,
    ) -> None:
        self._store = store
        self.cache = cache
        self.undo = undo
        self.step_up = step_up
        self.notifier = notifier
        self.selection = selection

    @property
    def user_id(self) -> str:
        if not self.cache.user_id:
            raise JournalError("No authenticated user")
        return self.cache.user_id

    async def _write(self, what: str, op: Awaitable[T]) -> T:
        """Await a store write, turning failures into a notice and JournalWriteError."""
        try:
            return await op
        except Exception as e:
            logger.error("Failed to %s: %s", what, e)
            self.notifier.error(f"Failed to {what}")
            raise JournalWriteError(f"Failed to {what}: {e}") from e

    # ─── Challenges ─────────────────────────────────────────────

    @property
    def selected_challenge(self) -> Challenge | None:
        return self.cache.get_challenge(self.selection.challenge_id)

    def select_challenge(self, challenge_id: str) -> Challenge:
        challenge = self.cache.get_challenge(challenge_id)
        if challenge is None:
            raise JournalError(f"Unknown challenge {challenge_id}")
        self.selection.select(challenge_id)
        return challenge

    def deselect_challenge(self) -> None:
        self.selection.clear()

    async def create_challenge(self, data: ChallengeInput) -> Challenge:
        challenge = Challenge(
            name=data.name.strip(),
            opening_balance=data.opening_balance,
            status=ChallengeStatus.ACTIVE,
        )
        key = await self._write(
            "create challenge",
            self._store.append(store_path(self.user_id, CHALLENGES), challenge.to_document()),
        )
        challenge = challenge.model_copy(update={"id": key})
        self.cache.set_challenges([challenge, *self.cache.challenges])
        self.notifier.success("Challenge created")
        logger.info("Created challenge %s (%s)", key, challenge.name)
        return challenge

    async def archive_challenge(self, challenge_id: str) -> StepUpOutcome:
        """Mark a challenge archived. Its trades become read-only."""
        challenge = self._challenge(challenge_id)

        async def archive() -> None:
            self.cache.set_challenges(
                [
                    c.model_copy(update={"status": ChallengeStatus.ARCHIVED})
                    if c.id == challenge.id
                    else c
                    for c in self.cache.challenges
                ]
            )
            await self._write(
                "archive challenge",
                self._store.update(
                    store_path(self.user_id, CHALLENGES, challenge.id),
                    {"status": ChallengeStatus.ARCHIVED.value},
                ),
            )
            self.notifier.success("Challenge archived")

        return await self.step_up.run_with_optional_step_up(archive)

    async def delete_challenge(self, challenge_id: str) -> StepUpOutcome:
        """Delete a challenge and all its trades, with an undo window."""
        challenge = self._challenge(challenge_id)
        path = store_path(self.user_id, CHALLENGES, challenge.id)

        async def delete() -> None:
            was_selected = self.selection.challenge_id == challenge.id
            index = self._index_of(self.cache.challenges, challenge.id)

            def remove_local() -> None:
                self.cache.hide(challenge.id)
                self.cache.set_challenges(
                    [c for c in self.cache.challenges if c.id != challenge.id]
                )
                if was_selected:
                    self.selection.clear()

            def restore_local() -> None:
                self.cache.unhide(challenge.id)
                if self.cache.get_challenge(challenge.id) is None:
                    challenges = list(self.cache.challenges)
                    challenges.insert(min(index, len(challenges)), challenge)
                    self.cache.set_challenges(challenges)
                if was_selected:
                    self.selection.select(challenge.id)

            async def commit_remote() -> None:
                await self._store.delete(path)
                self.cache.unhide(challenge.id)

            self.undo.schedule(
                challenge.id,
                "Challenge deleted",
                remove_local,
                restore_local,
                commit_remote,
                restored_message="Challenge restored",
                failure_message="Failed to delete challenge",
            )

        return await self.step_up.run_with_optional_step_up(delete)

    def _challenge(self, challenge_id: str) -> Challenge:
        challenge = self.cache.get_challenge(challenge_id)
        if challenge is None:
            raise JournalError(f"Unknown challenge {challenge_id}")
        return challenge

    @staticmethod
    def _index_of(records: list[Any], record_id: str) -> int:
        for i, record in enumerate(records):
            if record.id == record_id:
                return i
        return len(records)

    # ─── Trades ─────────────────────────────────────────────────

    def _writable_challenge(self) -> Challenge:
        challenge = self.selected_challenge
        if challenge is None:
            raise JournalError("Select a challenge first")
        if challenge.is_archived:
            raise JournalError(f"Challenge {challenge.name} is archived")
        return challenge

    def _trade(self, challenge_id: str, trade_id: str) -> Trade:
        for t in self.cache.get_trades(challenge_id):
            if t.id == trade_id:
                return t
        raise JournalError(f"Unknown trade {trade_id}")

    async def add_trade(self, data: TradeInput) -> Trade:
        """Log a trade against the selected challenge."""
        challenge = self._writable_challenge()
        trade = data.to_trade()
        key = await self._write(
            "add trade",
            self._store.append(trades_path(self.user_id, challenge.id), trade.to_document()),
        )
        trade = trade.model_copy(update={"id": key})
        self.cache.set_trades(challenge.id, sort_trades([trade, *self.cache.get_trades(challenge.id)]))
        self.notifier.success("Trade added")
        logger.info("Added trade %s to challenge %s", key, challenge.id)
        return trade

    async def update_trade(self, trade_id: str, data: TradeInput) -> StepUpOutcome:
        challenge = self._writable_challenge()
        existing = self._trade(challenge.id, trade_id)
        updated = data.to_trade(trade_id=trade_id, created_at=existing.created_at)

        async def update() -> None:
            self.cache.set_trades(
                challenge.id,
                sort_trades(
                    updated if t.id == trade_id else t for t in self.cache.get_trades(challenge.id)
                ),
            )
            await self._write(
                "update trade",
                self._store.set(
                    f"{trades_path(self.user_id, challenge.id)}/{trade_id}",
                    updated.to_document(),
                ),
            )
            self.notifier.success("Trade updated")

        return await self.step_up.run_with_optional_step_up(update)

    async def delete_trade(self, trade_id: str) -> StepUpOutcome:
        """Delete a trade of the selected challenge, with an undo window."""
        challenge = self._writable_challenge()
        trade = self._trade(challenge.id, trade_id)
        path = f"{trades_path(self.user_id, challenge.id)}/{trade_id}"

        async def delete() -> None:
            def remove_local() -> None:
                self.cache.hide(trade_id)
                self.cache.set_trades(
                    challenge.id, [t for t in self.cache.get_trades(challenge.id) if t.id != trade_id]
                )

            def restore_local() -> None:
                self.cache.unhide(trade_id)
                trades = self.cache.get_trades(challenge.id)
                if all(t.id != trade_id for t in trades):
                    self.cache.set_trades(challenge.id, sort_trades([*trades, trade]))

            async def commit_remote() -> None:
                await self._store.delete(path)
                self.cache.unhide(trade_id)

            self.undo.schedule(
                trade_id,
                "Trade deleted",
                remove_local,
                restore_local,
                commit_remote,
                restored_message="Trade restored",
                failure_message="Failed to delete trade",
            )

        return await self.step_up.run_with_optional_step_up(delete)

    def pending_delete(self, item_id: str) -> PendingDelete | None:
        return self.undo.pending.get(item_id)

    # ─── Notes & links ──────────────────────────────────────────

    async def add_note(self, data: NoteInput) -> Note:
        note = Note(title=data.title.strip(), content=data.content)
        key = await self._write(
            "add note", self._store.append(store_path(self.user_id, NOTES), note.to_document())
        )
        note = note.model_copy(update={"id": key})
        self.cache.set_notes([note, *self.cache.notes])
        self.notifier.success("Note added")
        return note

    async def update_note(self, note_id: str, data: NoteInput) -> Note:
        note = self._find(self.cache.notes, note_id, "note")
        updated = note.model_copy(update={"title": data.title.strip(), "content": data.content})
        self.cache.set_notes([updated if n.id == note_id else n for n in self.cache.notes])
        await self._write(
            "update note",
            self._store.update(
                store_path(self.user_id, NOTES, note_id),
                {"title": updated.title, "content": updated.content},
            ),
        )
        self.notifier.success("Note updated")
        return updated

    async def delete_note(self, note_id: str) -> None:
        await self._write("delete note", self._store.delete(store_path(self.user_id, NOTES, note_id)))
        self.cache.set_notes([n for n in self.cache.notes if n.id != note_id])
        self.notifier.success("Note deleted")

    async def add_link(self, data: LinkInput) -> Link:
        link = Link(title=data.title, url=data.url)
        key = await self._write(
            "add link", self._store.append(store_path(self.user_id, LINKS), link.to_document())
        )
        link = link.model_copy(update={"id": key})
        self.cache.set_links([link, *self.cache.links])
        self.notifier.success("Link added")
        return link

    async def update_link(self, link_id: str, data: LinkInput) -> Link:
        link = self._find(self.cache.links, link_id, "link")
        updated = link.model_copy(update={"title": data.title, "url": data.url})
        self.cache.set_links([updated if lk.id == link_id else lk for lk in self.cache.links])
        await self._write(
            "update link",
            self._store.update(
                store_path(self.user_id, LINKS, link_id),
                {"title": updated.title, "url": updated.url},
            ),
        )
        self.notifier.success("Link updated")
        return updated

    async def delete_link(self, link_id: str) -> None:
        await self._write("delete link", self._store.delete(store_path(self.user_id, LINKS, link_id)))
        self.cache.set_links([lk for lk in self.cache.links if lk.id != link_id])
        self.notifier.success("Link deleted")

    @staticmethod
    def _find(records: list[T], record_id: str, kind: str) -> T:
        for record in records:
            if record.id == record_id:
                return record
        raise JournalError(f"Unknown {kind} {record_id}")

    # ─── Checklists ─────────────────────────────────────────────

    async def list_checklists(self) -> list[Checklist]:
        """Read checklists straight from the store, most recently edited first."""
        try:
            docs = await self._store.read_collection(store_path(self.user_id, CHECKLISTS))
        except Exception as e:
            logger.error("Error fetching checklists: %s", e)
            self.notifier.error("Failed to load checklists")
            raise JournalError(f"Failed to load checklists: {e}") from e

        checklists = []
        for key, doc in docs.items():
            try:
                checklists.append(Checklist.model_validate({**doc, "id": key}))
            except ValidationError:
                logger.warning("Skipping malformed checklist %s", key)
        return sorted(checklists, key=lambda c: c.updated_at, reverse=True)

    async def add_checklist(
        self,
        title: str,
        items: list[ChecklistItem] | None = None,
        is_duplicate: bool | None = None,
    ) -> Checklist:
        if not title.strip():
            raise ValueError("Checklist title is required")
        checklist = Checklist(title=title.strip(), items=items or [], is_duplicate=is_duplicate)
        key = await self._write(
            "save checklist",
            self._store.append(store_path(self.user_id, CHECKLISTS), checklist.to_document()),
        )
        self.notifier.success("Checklist created")
        return checklist.model_copy(update={"id": key})

    async def duplicate_checklist(self, checklist: Checklist) -> Checklist:
        """Save a fresh copy of a checklist with every answer cleared."""
        tree = ChecklistTree.from_items(checklist.items).duplicate()
        return await self.add_checklist(
            f"{checklist.title} (Copy)", tree.to_items(), is_duplicate=True
        )

    async def update_checklist(self, checklist: Checklist) -> StepUpOutcome:
        if not checklist.id:
            raise JournalError("Checklist has not been saved yet")

        async def update() -> None:
            saved = checklist.model_copy(update={"updated_at": utc_now_iso()})
            await self._write(
                "update checklist",
                self._store.set(
                    store_path(self.user_id, CHECKLISTS, checklist.id), saved.to_document()
                ),
            )
            self.notifier.success("Checklist updated")

        return await self.step_up.run_with_optional_step_up(update)

    async def delete_checklist(self, checklist_id: str) -> StepUpOutcome:
        """Delete a checklist immediately. There is no undo window."""

        async def delete() -> None:
            await self._write(
                "delete checklist",
                self._store.delete(store_path(self.user_id, CHECKLISTS, checklist_id)),
            )
            self.notifier.success("Checklist deleted")

        return await self.step_up.run_with_optional_step_up(delete)
