"""
Round and bidding-window timing

Rounds are fixed-length intervals numbered by wall-clock time:
round_id = floor(t / round_duration). Bids for the next round are accepted
during the bidding window, the last `bidding_window` seconds before the next
round boundary. Nothing here is persisted; every value is derived from time.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from billboard.errors import OutbidError

Clock = Callable[[], float]


class RoundClock:
    """Derives round ids and bidding-window state from wall-clock seconds"""

    def __init__(self, round_duration: int, bidding_window: int):
        if round_duration <= 0:
            raise ValueError("round_duration must be positive")
        if not 0 < bidding_window <= round_duration:
            raise ValueError("bidding_window must be in (0, round_duration]")
        self.round_duration = round_duration
        self.bidding_window = bidding_window

    def round_id(self, now: float) -> int:
        return int(now) // self.round_duration

    def next_round_id(self, now: float) -> int:
        return self.round_id(now) + 1

    def round_start(self, round_id: int) -> int:
        return round_id * self.round_duration

    def next_round_start(self, now: float) -> int:
        return self.round_start(self.next_round_id(now))

    def bidding_opens_at(self, now: float) -> int:
        return self.next_round_start(now) - self.bidding_window

    def is_bidding_open(self, now: float) -> bool:
        return self.bidding_opens_at(now) <= int(now) < self.next_round_start(now)

    def time_until_bidding_opens(self, now: float) -> int:
        """Seconds until the window opens; 0 while it is open"""
        return max(0, self.bidding_opens_at(now) - int(now))

    def time_until_round_ends(self, now: float) -> int:
        return self.next_round_start(now) - int(now)


@dataclass(frozen=True)
class AuctionRules:
    """
    Bidding rules of one deployment.

    windowed: bids only accepted inside the bidding window, for the next round.
        When False the billboard is always open and a winning bid takes the
        slot immediately.
    require_refunds: superseded bidders are owed their full amount.
    min_increment_percent: a new bid must exceed the highest by this percentage.
    accept_ties: a bid equal to the highest supersedes it (later bidder wins).
    """

    windowed: bool = True
    require_refunds: bool = True
    min_increment_percent: int = 0
    accept_ties: bool = False

    def __post_init__(self):
        if self.min_increment_percent < 0:
            raise ValueError("min_increment_percent must not be negative")
        if not self.windowed and self.require_refunds:
            # a displaced continuous occupant has already been paid out as revenue
            raise ValueError("continuous auctions cannot refund displaced bids")

    def required_to_beat(self, highest: int) -> int:
        """Smallest raw amount that can supersede `highest` (0 means no bid yet)"""
        if highest <= 0:
            return 0
        if self.min_increment_percent:
            return -(-highest * (100 + self.min_increment_percent) // 100)
        return highest if self.accept_ties else highest + 1

    def beats(self, amount: int, highest: int) -> bool:
        return highest <= 0 or amount >= self.required_to_beat(highest)

    def check_outbid(self, amount: int, highest: int, highest_display: Optional[str] = None) -> None:
        """Raise OutbidError unless `amount` supersedes `highest`"""
        if not self.beats(amount, highest):
            raise OutbidError(highest_display, self.min_increment_percent)


ROUNDS = AuctionRules(windowed=True, require_refunds=True, min_increment_percent=0, accept_ties=False)
CONTINUOUS = AuctionRules(windowed=False, require_refunds=False, min_increment_percent=10, accept_ties=False)

PRESETS = {
    "rounds": ROUNDS,
    "continuous": CONTINUOUS,
}


class SlotPhase(str, Enum):
    OCCUPIED = "occupied"
    BIDDING_CLOSED = "bidding_closed"
    BIDDING_OPEN = "bidding_open"
    PENDING_FINALIZATION = "pending_finalization"


def slot_phase(current_round_id: int, last_finalized_round: int, bidding_open: bool,
               is_active: bool) -> SlotPhase:
    """Phase of one slot as seen by callers; a pending settlement takes precedence"""
    if current_round_id > last_finalized_round:
        return SlotPhase.PENDING_FINALIZATION
    if bidding_open:
        return SlotPhase.BIDDING_OPEN
    if is_active:
        return SlotPhase.OCCUPIED
    return SlotPhase.BIDDING_CLOSED


def format_time_remaining(seconds: int) -> str:
    seconds = max(0, int(seconds))
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    if days > 0:
        return f"{days}d {hours}h remaining"
    mins = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {mins}m remaining"
    return f"{mins}m {seconds % 60}s remaining"


class Countdown:
    """
    Local, advisory countdown between authoritative status fetches.

    `resync` is called with the server's value after each successful fetch;
    `remaining` decrements locally from there and never goes below zero.
    """

    def __init__(self, clock: Clock = time.monotonic):
        self._clock = clock
        self._value: Optional[int] = None
        self._synced_at = 0.0

    def resync(self, seconds: int) -> None:
        self._value = int(seconds)
        self._synced_at = self._clock()

    @property
    def synced(self) -> bool:
        return self._value is not None

    def remaining(self) -> int:
        if self._value is None:
            return 0
        elapsed = int(self._clock() - self._synced_at)
        return max(0, self._value - elapsed)

