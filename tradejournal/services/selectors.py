"""Derived view selectors: trade filtering, calendar cells, risk-reward."""

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum

from tradejournal.models.trade import Trade
from tradejournal.services.aggregation import DaySummary, daily_summary

ALL = "all"


class ResultFilter(str, Enum):
    ALL = "all"
    PROFIT = "profit"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


@dataclass
class TradeFilter:
    """Trade list filters. ``end`` defaults to ``start`` for a one-day range."""

    start: date | None = None
    end: date | None = None
    direction: str = ALL  # "all", "Buy" or "Sell"
    result: ResultFilter = ResultFilter.ALL


@dataclass
class CalendarCell:
    day: int
    date: str
    summary: DaySummary | None


@dataclass
class CalendarMonth:
    year: int
    month: int
    leading_blanks: int  # empty cells before day 1 in a Sunday-first grid
    cells: list[CalendarCell] = field(default_factory=list)


def risk_reward(
    entry: float | None, stop: float | None, target: float | None
) -> str:
    """Format the risk-reward ratio as "1 : X.XXX".

    Returns "-" when no stop-loss is set (stop == 0) or when entry equals stop.
    Display only: nothing is validated against the trade's profit.
    """
    entry = entry or 0.0
    stop = stop or 0.0
    target = target or 0.0

    if stop == 0:
        return "-"

    risk = abs(entry - stop)
    reward = abs(target - entry)
    if risk == 0:
        return "-"

    return f"1 : {reward / risk:.3f}"


def _trade_day(trade: Trade) -> datetime | None:
    try:
        return datetime.combine(date.fromisoformat(trade.date), time.min)
    except ValueError:
        return None


def filter_trades(trades: Iterable[Trade], filters: TradeFilter) -> list[Trade]:
    """Apply date range, direction and result filters; newest first.

    The date range covers whole days: start-of-day of ``start`` through
    end-of-day of ``end``, both inclusive.
    """
    lower = upper = None
    if filters.start is not None:
        lower = datetime.combine(filters.start, time.min)
        upper = datetime.combine(filters.end or filters.start, time.max)

    direction = filters.direction
    result = ResultFilter(filters.result)

    selected = []
    for t in trades:
        if lower is not None:
            day = _trade_day(t)
            if day is None or day < lower or day > upper:
                continue

        if direction != ALL and t.direction.value != direction:
            continue

        if result == ResultFilter.PROFIT and t.profit <= 0:
            continue
        if result == ResultFilter.LOSS and t.profit >= 0:
            continue
        if result == ResultFilter.BREAKEVEN and t.profit != 0:
            continue

        selected.append(t)

    return sort_trades(selected)


def sort_trades(trades: Iterable[Trade]) -> list[Trade]:
    """Newest date first; same-day trades newest creation first."""
    return sorted(trades, key=lambda t: (t.date, t.created_at), reverse=True)


def trades_on(trades: Iterable[Trade], day: str) -> list[Trade]:
    return [t for t in trades if t.date == day]


def calendar_month(trades: Iterable[Trade], year: int, month: int) -> CalendarMonth:
    """Calendar cells for one month, each with that day's summary (or None)."""
    trades = list(trades)
    first_weekday, days = calendar.monthrange(year, month)
    grid = CalendarMonth(
        year=year,
        month=month,
        # monthrange gives Monday=0; the grid starts on Sunday
        leading_blanks=(first_weekday + 1) % 7,
    )
    for day in range(1, days + 1):
        key = f"{year:04d}-{month:02d}-{day:02d}"
        grid.cells.append(CalendarCell(day=day, date=key, summary=daily_summary(trades, key)))
    return grid
