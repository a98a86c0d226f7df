"""CLI for inspecting a trading journal.

Usage:
    python scripts/journal.py --user UID                     # Challenge balances
    python scripts/journal.py --user UID --challenge ID      # Balance curve + stats
    python scripts/journal.py --user UID --challenge ID --month 2024-03
    python scripts/journal.py --user UID --backend redis     # Override STORE_BACKEND
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

from tradejournal.config import settings
from tradejournal.services.aggregation import (
    balance_series,
    monthly_summary,
    performance_stats,
    weekly_summary,
)
from tradejournal.services.session import JournalSession, StaticAuth
from tradejournal.services.store import create_store

logger = logging.getLogger(__name__)


def print_challenges(session: JournalSession) -> None:
    challenges = session.cache.challenges
    if not challenges:
        print("No challenges.")
        return
    print(f"{'ID':<22} {'Name':<30} {'Status':<9} {'Opening':>12} {'Balance':>12} {'Fees':>10}")
    print("-" * 100)
    for c in challenges:
        print(
            f"{c.id:<22} {c.name[:30]:<30} {c.status.value:<9} "
            f"{c.opening_balance:>12,.2f} {c.current_balance or 0:>12,.2f} {c.total_fees or 0:>10,.2f}"
        )


def print_challenge(session: JournalSession, challenge_id: str, month: str | None) -> bool:
    challenge = session.cache.get_challenge(challenge_id)
    if challenge is None:
        print(f"ERROR: Unknown challenge {challenge_id}")
        return False

    trades = session.cache.get_trades(challenge_id)
    print(f"{challenge.name} ({challenge.status.value})")
    print(f"  Opening balance: ${challenge.opening_balance:,.2f}")
    print(f"  Current balance: ${challenge.current_balance or 0:,.2f}")
    print(f"  Total fees:      ${challenge.total_fees or 0:,.2f}\n")

    stats = performance_stats(trades)
    print(f"  Trades: {stats.total_trades}  Win rate: {stats.win_rate_pct}%  "
          f"Net P&L: ${stats.net_profit:,.2f}  After fees: ${stats.net_after_fees:,.2f}")
    print(f"  Best: ${stats.best_trade:,.2f}  Worst: ${stats.worst_trade:,.2f}\n")

    print("  Balance curve:")
    for point in balance_series(trades, challenge.opening_balance):
        print(f"    {point.date}  {point.balance:>12,.2f}  ({point.daily_profit:+,.2f}, "
              f"{point.trade_count} trade{'s' if point.trade_count != 1 else ''})")

    if month:
        year, mon = (int(p) for p in month.split("-"))
        period = monthly_summary(trades, year, mon)
    else:
        period = weekly_summary(trades, date.today())
    print(f"\n  {period.start} .. {period.end}: {period.trade_count} trades, "
          f"${period.total_profit:,.2f} ({period.win_count}W / {period.loss_count}L)")
    return True


async def run(args: argparse.Namespace) -> int:
    store = create_store(args.backend)
    session = JournalSession(StaticAuth(args.user), store)
    try:
        await session.open()
        if session.cache.last_error:
            print(f"ERROR: {session.cache.last_error}")
            return 1
        if args.challenge:
            return 0 if print_challenge(session, args.challenge, args.month) else 1
        print_challenges(session)
        return 0
    finally:
        await session.close()
        await store.close()


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Trade journal")
    parser.add_argument("--user", required=True, help="User id whose journal to read")
    parser.add_argument("--challenge", help="Show balance curve and stats for one challenge")
    parser.add_argument("--month", help="Summarize a month (YYYY-MM) instead of this week")
    parser.add_argument(
        "--backend", choices=["memory", "redis", "firebase"], help="Record store backend"
    )
    args = parser.parse_args()

    if args.month:
        try:
            date.fromisoformat(f"{args.month}-01")
        except ValueError:
            parser.error("--month must be YYYY-MM")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
