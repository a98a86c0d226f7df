"""Pydantic models for the trade journal."""

from tradejournal.models.challenge import Challenge, ChallengeInput, ChallengeStatus
from tradejournal.models.checklist import Checklist, ChecklistItem, ItemKind
from tradejournal.models.notes import Link, LinkInput, Note, NoteInput
from tradejournal.models.security import TotpEnrollment
from tradejournal.models.trade import Direction, Trade, TradeInput

__all__ = [
    "Challenge",
    "ChallengeInput",
    "ChallengeStatus",
    "Checklist",
    "ChecklistItem",
    "Direction",
    "ItemKind",
    "Link",
    "LinkInput",
    "Note",
    "NoteInput",
    "TotpEnrollment",
    "Trade",
    "TradeInput",
]
