"""Shared test fixtures."""

import pytest
import pytest_asyncio

from tradejournal.services.notifier import Notice, Notifier
from tradejournal.services.session import JournalSession, StaticAuth
from tradejournal.services.store.memory import MemoryStore

USER = "user-1"


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.jobs: list[tuple[float, object]] = []

    def call_later(self, delay, callback) -> None:
        self.jobs.append((self.now + delay, callback))

    async def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [job for job in self.jobs if job[0] <= self.now]
        self.jobs = [job for job in self.jobs if job[0] > self.now]
        for _, callback in sorted(due, key=lambda job: job[0]):
            await callback()


def seed_data() -> dict:
    """One active challenge with two trades, one archived challenge, a note and a link."""
    return {
        "users": {
            USER: {
                "challenges": {
                    "c1": {
                        "name": "Phase 1",
                        "openingBalance": 10000,
                        "status": "active",
                        "createdAt": "2024-03-01T00:00:00.000Z",
                        "trades": {
                            "t1": {
                                "date": "2024-03-04",
                                "pair": "EURUSD",
                                "entryPrice": 1.065,
                                "exitPrice": 1.075,
                                "slPrice": 1.06,
                                "lotSize": 1,
                                "fees": 2.5,
                                "direction": "Buy",
                                "profit": 30,
                                "createdAt": "2024-03-04T09:00:00.000Z",
                            },
                            "t2": {
                                "date": "2024-03-05",
                                "pair": "GBPUSD",
                                "entryPrice": 1.27,
                                "exitPrice": 1.26,
                                "lotSize": 0.5,
                                "fees": 1.5,
                                "direction": "Sell",
                                "profit": 30,
                                "createdAt": "2024-03-05T09:00:00.000Z",
                            },
                        },
                    },
                    "c0": {
                        "name": "Old account",
                        "openingBalance": 5000,
                        "status": "Achive",
                        "createdAt": "2024-01-01T00:00:00.000Z",
                    },
                },
                "notes": {
                    "n1": {
                        "title": "Plan",
                        "content": "Only London session",
                        "createdAt": "2024-03-01T08:00:00.000Z",
                    }
                },
                "links": {
                    "l1": {
                        "title": "Calendar",
                        "url": "https://www.forexfactory.com",
                        "createdAt": "2024-03-01T08:00:00.000Z",
                    }
                },
            }
        }
    }


@pytest.fixture
def store() -> MemoryStore:
    """Memory store seeded with a small journal."""
    return MemoryStore(seed_data())


@pytest.fixture
def notices() -> list[Notice]:
    return []


@pytest.fixture
def notifier(notices) -> Notifier:
    """Notifier that records every notice it sends."""
    return Notifier(sink=notices.append)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest_asyncio.fixture
async def session(store, notifier, scheduler, tmp_path):
    """Open session for USER over the seeded store."""
    s = JournalSession(
        StaticAuth(USER),
        store,
        notifier=notifier,
        scheduler=scheduler,
        selection_file=tmp_path / "selection.json",
    )
    await s.open()
    yield s
    await s.close()
