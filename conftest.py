import pytest
from stellar_sdk import Keypair

from billboard.config import Settings
from billboard.mock_authority import InMemoryAuthority

ROUND = 12 * 60 * 60
WINDOW = 30 * 60
BASE = 40000 * ROUND  # start of round 40000


class FakeClock:
    """Settable wall clock for the round/bidding-window rules"""

    def __init__(self, now: int = BASE + 100):
        self.now = now

    def __call__(self) -> float:
        return self.now

    @property
    def round_id(self) -> int:
        return self.now // ROUND

    def next_boundary(self) -> int:
        return (self.round_id + 1) * ROUND

    def open_bidding(self, offset: int = 0):
        """Move to the start of the next bidding window (plus offset seconds)"""
        self.now = self.next_boundary() - WINDOW + offset

    def before_bidding(self, seconds: int):
        """Move to `seconds` before the next bidding window opens"""
        self.now = self.next_boundary() - WINDOW - seconds

    def next_round(self, offset: int = 0):
        self.now = self.next_boundary() + offset


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def authority(settings, clock):
    return InMemoryAuthority(settings, clock=clock)


@pytest.fixture
def make_address():
    return lambda: Keypair.random().public_key
