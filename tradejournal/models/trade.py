"""Trade record model."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tradejournal.models.base import JournalModel, parse_amount, utc_now_iso

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class Direction(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class Trade(JournalModel):
    """A logged position. Profit is user-entered and never derived from prices."""

    date: str  # YYYY-MM-DD, no time component
    pair: str = ""
    entry_price: float = 0.0
    exit_price: float = 0.0
    sl_price: float = 0.0
    lot_size: float = 0.0
    fees: float = 0.0
    direction: Direction = Direction.BUY
    profit: float = 0.0
    notes: str | None = None
    screenshot_url: str | None = None
    link: str | None = None
    created_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="before")
    @classmethod
    def _legacy_profit_key(cls, data: Any) -> Any:
        # Older documents stored the P&L under profitLoss
        if isinstance(data, dict) and "profit" not in data and "profitLoss" in data:
            data = dict(data)
            data["profit"] = data.pop("profitLoss")
        return data

    @field_validator(
        "entry_price", "exit_price", "sl_price", "lot_size", "fees", "profit", mode="before"
    )
    @classmethod
    def _coerce_amount(cls, v: Any) -> float:
        return parse_amount(v)

    @field_validator("date", mode="before")
    @classmethod
    def _usable_date(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            raise ValueError("trade has no date")
        return v

    @field_validator("pair", "created_at", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("direction", mode="before")
    @classmethod
    def _coerce_direction(cls, v: Any) -> Direction:
        if isinstance(v, Direction):
            return v
        if isinstance(v, str) and v.strip().lower() == "sell":
            return Direction.SELL
        return Direction.BUY


class TradeInput(BaseModel):
    """User-entered trade, validated before anything reaches the store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    date: str = Field(..., pattern=DATE_PATTERN)
    pair: str = Field(..., min_length=1, max_length=30)
    entry_price: float = Field(..., ge=0)
    exit_price: float = Field(..., ge=0)
    sl_price: float = Field(0.0, ge=0)
    lot_size: float = Field(..., gt=0)
    fees: float = Field(0.0, ge=0)
    direction: Direction
    profit: float
    notes: str | None = None
    screenshot_url: str | None = None
    link: str | None = None

    def to_trade(self, trade_id: str | None = None, created_at: str | None = None) -> Trade:
        """Build the stored trade, stamping a fresh creation time unless one is given."""
        data = self.model_dump()
        data["id"] = trade_id
        data["created_at"] = created_at or utc_now_iso()
        return Trade.model_validate(data)
