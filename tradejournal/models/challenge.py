"""Challenge (trading account) model."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tradejournal.models.base import JournalModel, parse_amount, utc_now_iso

# Spellings of the archived status found in stored documents
_ARCHIVED_SPELLINGS = {"archived", "archive", "achive"}


class ChallengeStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Challenge(JournalModel):
    """A tracked trading account with its own trade history.

    current_balance and total_fees are derived from the trade set by the
    cache and are never written back to the store.
    """

    name: str = ""
    opening_balance: float = 0.0
    status: ChallengeStatus = ChallengeStatus.ACTIVE
    created_at: str = Field(default_factory=utc_now_iso)
    current_balance: float | None = None
    total_fees: float | None = None

    @field_validator("opening_balance", mode="before")
    @classmethod
    def _coerce_balance(cls, v: Any) -> float:
        return parse_amount(v)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> ChallengeStatus:
        if isinstance(v, ChallengeStatus):
            return v
        if isinstance(v, str) and v.strip().lower() in _ARCHIVED_SPELLINGS:
            return ChallengeStatus.ARCHIVED
        return ChallengeStatus.ACTIVE

    @property
    def is_archived(self) -> bool:
        return self.status == ChallengeStatus.ARCHIVED

    def to_document(self, exclude: set[str] | None = None) -> dict[str, Any]:
        return super().to_document({"current_balance", "total_fees"} | (exclude or set()))


class ChallengeInput(BaseModel):
    """User-entered challenge."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    opening_balance: float = Field(..., ge=0)
