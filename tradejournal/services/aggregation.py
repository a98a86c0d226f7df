"""Aggregation engine: derive summaries, rollups and chart series from trades.

Everything here is a pure function over a list of trades. Dates are compared
as YYYY-MM-DD strings, never as timestamps, so a trade logged in one timezone
lands on the same calendar day everywhere.
"""

import calendar
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from tradejournal.models.base import parse_amount
from tradejournal.models.trade import Trade

__all__ = [
    "BalancePoint",
    "DaySummary",
    "PerformanceStats",
    "PeriodSummary",
    "Rollup",
    "balance_series",
    "challenge_rollup",
    "daily_summary",
    "monthly_summary",
    "parse_amount",
    "performance_stats",
    "period_summary",
    "weekly_summary",
]


@dataclass
class DaySummary:
    """Trades on one calendar day."""

    date: str
    trades: list[Trade]
    total_profit: float
    trade_count: int


@dataclass
class BalancePoint:
    """One point of the cumulative balance chart."""

    date: str
    balance: float
    daily_profit: float
    trade_count: int


@dataclass
class Rollup:
    current_balance: float
    total_fees: float


@dataclass
class PerformanceStats:
    """Win/loss statistics shown on the dashboard."""

    total_trades: int = 0
    net_profit: float = 0.0
    total_fees: float = 0.0
    net_after_fees: float = 0.0
    winning_trades: int = 0
    losing_trades: int = 0
    breakeven_trades: int = 0
    win_rate_pct: int = 0
    loss_rate_pct: int = 0
    breakeven_rate_pct: int = 0
    best_trade: float = 0.0
    worst_trade: float = 0.0


@dataclass
class PeriodSummary:
    start: str
    end: str
    total_profit: float = 0.0
    trade_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    trades: list[Trade] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.trade_count > 0


def daily_summary(trades: Iterable[Trade], day: str) -> DaySummary | None:
    """Summarize the trades logged on ``day``.

    Returns None when there are none, so an empty calendar cell is
    distinguishable from a day that netted exactly zero.
    """
    matching = [t for t in trades if t.date == day]
    if not matching:
        return None
    return DaySummary(
        date=day,
        trades=matching,
        total_profit=sum(t.profit for t in matching),
        trade_count=len(matching),
    )


def balance_series(trades: Iterable[Trade], opening_balance: float) -> list[BalancePoint]:
    """Cumulative balance per trading day, oldest first.

    Trades sharing a date collapse into one point.
    """
    profit_by_day: dict[str, float] = defaultdict(float)
    count_by_day: dict[str, int] = defaultdict(int)
    for t in trades:
        profit_by_day[t.date] += parse_amount(t.profit)
        count_by_day[t.date] += 1

    running = parse_amount(opening_balance)
    points = []
    for day in sorted(profit_by_day):
        running += profit_by_day[day]
        points.append(
            BalancePoint(
                date=day,
                balance=round(running, 2),
                daily_profit=round(profit_by_day[day], 2),
                trade_count=count_by_day[day],
            )
        )
    return points


def challenge_rollup(trades: Iterable[Trade], opening_balance: float) -> Rollup:
    """Current balance (opening + sum of profit) and total fees."""
    total_profit = 0.0
    total_fees = 0.0
    for t in trades:
        total_profit += parse_amount(t.profit)
        total_fees += parse_amount(t.fees)
    return Rollup(
        current_balance=parse_amount(opening_balance) + total_profit,
        total_fees=total_fees,
    )


def _pct(part: int, whole: int) -> int:
    # Matches the dashboard's toFixed(0): halves round up
    if whole <= 0:
        return 0
    return int(part * 100 / whole + 0.5)


def performance_stats(trades: Iterable[Trade]) -> PerformanceStats:
    """Compute win rate, P&L and extremes for a (usually filtered) trade list."""
    trades = list(trades)
    if not trades:
        return PerformanceStats()

    profits = [parse_amount(t.profit) for t in trades]
    wins = [p for p in profits if p > 0]
    losses = [p for p in profits if p < 0]
    breakeven = len(profits) - len(wins) - len(losses)
    net = sum(profits)
    fees = sum(parse_amount(t.fees) for t in trades)
    total = len(trades)

    return PerformanceStats(
        total_trades=total,
        net_profit=net,
        total_fees=fees,
        net_after_fees=net - fees,
        winning_trades=len(wins),
        losing_trades=len(losses),
        breakeven_trades=breakeven,
        win_rate_pct=_pct(len(wins), total),
        loss_rate_pct=_pct(len(losses), total),
        breakeven_rate_pct=_pct(breakeven, total),
        best_trade=max(wins) if wins else 0.0,
        worst_trade=min(losses) if losses else 0.0,
    )


def period_summary(trades: Iterable[Trade], start: date, end: date) -> PeriodSummary:
    """Totals for trades dated within [start, end], inclusive."""
    lo, hi = start.isoformat(), end.isoformat()
    summary = PeriodSummary(start=lo, end=hi)
    for t in trades:
        if not lo <= t.date <= hi:
            continue
        profit = parse_amount(t.profit)
        summary.trades.append(t)
        summary.total_profit += profit
        summary.trade_count += 1
        if profit > 0:
            summary.win_count += 1
        elif profit < 0:
            summary.loss_count += 1
    return summary


def weekly_summary(trades: Iterable[Trade], any_day: date) -> PeriodSummary:
    """Totals for the Sunday-to-Saturday week containing ``any_day``."""
    # date.weekday(): Monday=0 ... Sunday=6
    start = any_day - timedelta(days=(any_day.weekday() + 1) % 7)
    return period_summary(trades, start, start + timedelta(days=6))


def monthly_summary(trades: Iterable[Trade], year: int, month: int) -> PeriodSummary:
    last_day = calendar.monthrange(year, month)[1]
    return period_summary(trades, date(year, month, 1), date(year, month, last_day))
