"""
Auction authority port

The auction authority is the system of record for slots, bids, refunds and
stats. Callers only talk to it through `AuctionAuthority`; the Soroban
contract client and the in-memory simulation both implement it.

Amounts crossing this interface are integers in the token's minimum
denomination. Failures are raised as billboard.errors exceptions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class Ad:
    """A slot occupant"""
    advertiser: str
    image_url: str
    link_url: str
    title: str
    bid_amount: int
    round_id: int


@dataclass
class SlotState:
    slot: int
    ad: Optional[Ad]
    is_active: bool
    time_remaining: int


@dataclass
class HighestBid:
    amount: int = 0
    bidder: Optional[str] = None


@dataclass
class BiddingStatus:
    bidding_open: bool
    current_round_id: int
    next_round_id: int
    time_until_bidding: int
    time_until_next_round: int
    highest_bids: Dict[int, HighestBid] = field(default_factory=dict)

    def highest(self, slot: int) -> HighestBid:
        return self.highest_bids.get(slot, HighestBid())


@dataclass
class Stats:
    total_revenue: int
    total_burned: int
    total_ads: int


@dataclass
class BidRequest:
    slot: int
    advertiser: str
    image_url: str
    link_url: str
    title: str
    amount: int


class AuctionAuthority(ABC):
    """Read and write operations offered by the auction authority"""

    @abstractmethod
    def read_slot_state(self, slot: int) -> SlotState:
        ...

    @abstractmethod
    def read_bidding_status(self) -> BiddingStatus:
        ...

    @abstractmethod
    def read_stats(self) -> Stats:
        ...

    @abstractmethod
    def read_minimum_bid(self, slot: int) -> int:
        ...

    @abstractmethod
    def read_last_finalized_round(self, slot: int) -> int:
        ...

    @abstractmethod
    def read_pending_refund(self, address: str) -> int:
        ...

    @abstractmethod
    def submit_bid(self, bid: BidRequest) -> str:
        """Place a bid on behalf of `bid.advertiser`; returns the transaction hash"""

    @abstractmethod
    def finalize_round(self, slot: int) -> str:
        """
        Settle the current round for a slot; returns the transaction hash.

        Raises AlreadyFinalizedError if the round was settled before.
        """

    @abstractmethod
    def withdraw_revenue(self, to: str) -> str:
        ...

    @abstractmethod
    def record_burn(self, amount: int) -> str:
        ...

    @property
    def contract_id(self) -> Optional[str]:
        return None
