#!/usr/bin/env python3
"""
In-memory auction authority

Simulates the billboard contract without a network so the API can run
locally (AUTHORITY_BACKEND=memory) and be tested end to end. It follows the
same round / bidding-window rules the contract enforces:

- bids for the next round are only accepted inside the bidding window
  (or at any time for continuous deployments)
- only the highest bid per slot and round is kept; superseded bids become
  pending refunds when the deployment refunds losers
- finalizing a settled round raises AlreadyFinalizedError
- revenue, burn and ad counters never decrease
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from billboard.authority import (
    Ad,
    AuctionAuthority,
    BiddingStatus,
    BidRequest,
    HighestBid,
    SlotState,
    Stats,
)
from billboard.common import format_usd, from_units, generate_tx_hash, to_units
from billboard.config import Settings
from billboard.errors import (
    AlreadyFinalizedError,
    AuthorizationError,
    ValidationError,
    WindowClosedError,
)


@dataclass
class _Occupancy:
    ad: Ad
    expires_at: int


class InMemoryAuthority(AuctionAuthority):
    """Thread-safe simulation of the billboard contract"""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time,
                 signer_authorized: bool = True):
        self.settings = settings
        self.rules = settings.rules
        self.round_clock = settings.round_clock()
        self.clock = clock
        self.decimals = settings.token_decimals
        self.signer_authorized = signer_authorized
        self.min_bids = {slot: to_units(settings.min_bid(slot), self.decimals) for slot in settings.slots}

        self._lock = threading.RLock()
        start_round = self.round_clock.round_id(clock())
        self.occupancy: Dict[int, _Occupancy] = {}
        self.last_finalized: Dict[int, int] = {slot: start_round for slot in settings.slots}
        self.highest: Dict[Tuple[int, int], BidRequest] = {}  # (slot, round_id) -> bid
        self.pending_refunds: Dict[str, int] = {}
        self.total_revenue = 0
        self.total_burned = 0
        self.total_ads = 0
        self.withdrawable = 0
        self.events: List[Tuple[Any, ...]] = []

    def _now(self) -> int:
        return int(self.clock())

    def _check_slot(self, slot: int) -> None:
        if slot not in self.min_bids:
            raise ValidationError("Invalid slot", detail=f"Invalid slot {slot}")

    def _check_authorized(self) -> None:
        if not self.signer_authorized:
            raise AuthorizationError(detail="Only owner")

    def _display(self, raw: int) -> str:
        return format_usd(from_units(raw, self.decimals))

    def _active_occupancy(self, slot: int, now: int) -> Optional[_Occupancy]:
        occ = self.occupancy.get(slot)
        if occ is not None and occ.expires_at > now:
            return occ
        return None

    def _collect(self, amount: int) -> None:
        self.total_revenue += amount
        self.withdrawable += amount

    def _release(self, bid: BidRequest, reason: str) -> None:
        """A bid that did not win: refundable, or kept as revenue when the deployment does not refund"""
        if self.rules.require_refunds:
            self.pending_refunds[bid.advertiser] = self.pending_refunds.get(bid.advertiser, 0) + bid.amount
            self.events.append(("Refundable", bid.slot, bid.advertiser, bid.amount, reason))
        else:
            self._collect(bid.amount)
            self.events.append(("Forfeited", bid.slot, bid.advertiser, bid.amount, reason))

    def _current_highest(self, slot: int, now: int) -> int:
        if self.rules.windowed:
            bid = self.highest.get((slot, self.round_clock.next_round_id(now)))
            return bid.amount if bid else 0
        occ = self._active_occupancy(slot, now)
        return occ.ad.bid_amount if occ else 0

    # reads

    def read_slot_state(self, slot: int) -> SlotState:
        with self._lock:
            self._check_slot(slot)
            now = self._now()
            occ = self.occupancy.get(slot)
            if occ is None:
                return SlotState(slot=slot, ad=None, is_active=False, time_remaining=0)
            remaining = max(0, occ.expires_at - now)
            return SlotState(slot=slot, ad=occ.ad, is_active=remaining > 0, time_remaining=remaining)

    def read_bidding_status(self) -> BiddingStatus:
        with self._lock:
            now = self._now()
            rc = self.round_clock
            highest_bids = {}
            for slot in self.min_bids:
                if self.rules.windowed:
                    bid = self.highest.get((slot, rc.next_round_id(now)))
                    highest_bids[slot] = HighestBid(bid.amount, bid.advertiser) if bid else HighestBid()
                else:
                    occ = self._active_occupancy(slot, now)
                    highest_bids[slot] = HighestBid(occ.ad.bid_amount, occ.ad.advertiser) if occ else HighestBid()
            return BiddingStatus(
                bidding_open=rc.is_bidding_open(now) if self.rules.windowed else True,
                current_round_id=rc.round_id(now),
                next_round_id=rc.next_round_id(now),
                time_until_bidding=rc.time_until_bidding_opens(now) if self.rules.windowed else 0,
                time_until_next_round=rc.time_until_round_ends(now),
                highest_bids=highest_bids,
            )

    def read_stats(self) -> Stats:
        with self._lock:
            return Stats(self.total_revenue, self.total_burned, self.total_ads)

    def read_minimum_bid(self, slot: int) -> int:
        with self._lock:
            self._check_slot(slot)
            highest = self._current_highest(slot, self._now())
            return max(self.min_bids[slot], self.rules.required_to_beat(highest))

    def read_last_finalized_round(self, slot: int) -> int:
        with self._lock:
            self._check_slot(slot)
            return self.last_finalized[slot]

    def read_pending_refund(self, address: str) -> int:
        with self._lock:
            return self.pending_refunds.get(address, 0)

    # writes

    def submit_bid(self, bid: BidRequest) -> str:
        with self._lock:
            self._check_authorized()
            self._check_slot(bid.slot)
            now = self._now()
            if bid.amount < self.min_bids[bid.slot]:
                raise ValidationError("Bid below minimum for slot", detail="Bid below minimum")

            rc = self.round_clock
            if self.rules.windowed:
                if not rc.is_bidding_open(now):
                    raise WindowClosedError(rc.time_until_bidding_opens(now), detail="Bidding not open")
                key = (bid.slot, rc.next_round_id(now))
                previous = self.highest.get(key)
                highest = previous.amount if previous else 0
                self.rules.check_outbid(bid.amount, highest, self._display(highest))
                if previous is not None:
                    self._release(previous, "outbid")
                self.highest[key] = bid
            else:
                occ = self._active_occupancy(bid.slot, now)
                highest = occ.ad.bid_amount if occ else 0
                self.rules.check_outbid(bid.amount, highest, self._display(highest))
                ad = Ad(bid.advertiser, bid.image_url, bid.link_url, bid.title, bid.amount, rc.round_id(now))
                self.occupancy[bid.slot] = _Occupancy(ad, now + rc.round_duration)
                self._collect(bid.amount)
                self.total_ads += 1

            self.events.append(("BidPlaced", bid.slot, bid.advertiser, bid.amount, now))
            return generate_tx_hash()

    def finalize_round(self, slot: int) -> str:
        with self._lock:
            self._check_slot(slot)
            now = self._now()
            rc = self.round_clock
            current = rc.round_id(now)
            if self.last_finalized[slot] >= current:
                raise AlreadyFinalizedError(detail="Round already finalized")

            if self.rules.windowed:
                winner = self.highest.pop((slot, current), None)
                # rounds skipped by the scheduler can never be displayed
                stale = sorted(k for k in self.highest if k[0] == slot and k[1] < current)
                for key in stale:
                    self._release(self.highest.pop(key), "round expired")
                if winner is not None:
                    ad = Ad(winner.advertiser, winner.image_url, winner.link_url, winner.title,
                            winner.amount, current)
                    self.occupancy[slot] = _Occupancy(ad, rc.round_start(current + 1))
                    self._collect(winner.amount)
                    self.total_ads += 1

            self.last_finalized[slot] = current
            self.events.append(("RoundFinal", slot, current))
            return generate_tx_hash()

    def withdraw_revenue(self, to: str) -> str:
        with self._lock:
            self._check_authorized()
            if self.withdrawable <= 0:
                raise ValidationError("Nothing to withdraw", detail="Nothing to withdraw")
            self.events.append(("Withdraw", to, self.withdrawable))
            self.withdrawable = 0
            return generate_tx_hash()

    def record_burn(self, amount: int) -> str:
        with self._lock:
            self._check_authorized()
            if amount <= 0:
                raise ValidationError("Burn amount must be positive")
            self.total_burned += amount
            self.events.append(("Burn", amount))
            return generate_tx_hash()

    def claim_refund(self, address: str) -> int:
        """End-user refund claim; returns the amount released"""
        with self._lock:
            amount = self.pending_refunds.pop(address, 0)
            if amount <= 0:
                raise ValidationError("No refund pending")
            self.events.append(("RefundClaimed", address, amount))
            return amount
