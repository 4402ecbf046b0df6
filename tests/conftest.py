"""
Shared fixtures: in-memory storage, a settable clock and a wired lending system
"""

import pytest
from datetime import datetime, timezone, date

from peer_lending.storage import InMemoryStorage
from peer_lending.config import PeerLendingConfig
from peer_lending.api.deps import LendingSystem


class FixedClock:
    """Clock that only moves when a test moves it"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, year, month, day, hour=10, minute=0):
        self.now = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def config():
    return PeerLendingConfig(database_url="memory://", history_limit=24, top_borrowers_limit=5)


@pytest.fixture
def system(storage, clock, config):
    return LendingSystem(storage=storage, clock=clock, config=config)


@pytest.fixture
def make_loan(system):
    """Factory for the standard 100000 @ 2% loan started 2024-01-15, due on the 15th"""
    def _make_loan(name="Asha", principal="100000", rate="2", due_day=15,
                   start=date(2024, 1, 15), **kwargs):
        return system.loan_manager.create_loan(
            borrower={"name": name, "phone": "555-0100", "relationship_type": "friend"},
            principal_amount=principal,
            interest_percentage=rate,
            interest_due_day=due_day,
            loan_start_date=start,
            **kwargs
        )
    return _make_loan
