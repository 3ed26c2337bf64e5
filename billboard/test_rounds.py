#!/usr/bin/env python3
"""
Round clock and bidding rule tests
"""

import pytest

from billboard.errors import OutbidError
from billboard.rounds import (
    CONTINUOUS,
    ROUNDS,
    AuctionRules,
    Countdown,
    RoundClock,
    SlotPhase,
    format_time_remaining,
    slot_phase,
)

HOUR = 3600


def test_round_id_is_time_divided_by_duration():
    rc = RoundClock(12 * HOUR, 30 * 60)
    assert rc.round_id(0) == 0
    assert rc.round_id(12 * HOUR - 1) == 0
    assert rc.round_id(12 * HOUR) == 1
    assert rc.round_id(1_728_000_123) == 1_728_000_123 // (12 * HOUR)
    assert rc.next_round_id(12 * HOUR) == 2


def test_bidding_window_is_the_interval_before_the_boundary():
    rc = RoundClock(12 * HOUR, 30 * 60)
    boundary = 12 * HOUR
    assert not rc.is_bidding_open(boundary - 30 * 60 - 1)
    assert rc.is_bidding_open(boundary - 30 * 60)
    assert rc.is_bidding_open(boundary - 1)
    # the boundary itself starts the next round, whose window is 11.5h away
    assert not rc.is_bidding_open(boundary)


def test_time_until_bidding_opens():
    rc = RoundClock(12 * HOUR, 30 * 60)
    opens = 12 * HOUR - 30 * 60
    assert rc.time_until_bidding_opens(opens - 2700) == 2700
    assert rc.time_until_bidding_opens(opens) == 0
    assert rc.time_until_bidding_opens(opens + 10) == 0
    assert rc.time_until_round_ends(opens) == 30 * 60


@pytest.mark.parametrize("duration,window", [(0, 1), (100, 0), (100, 101)])
def test_round_clock_rejects_bad_timing(duration, window):
    with pytest.raises(ValueError):
        RoundClock(duration, window)


def test_rounds_preset_requires_strictly_higher_bid():
    assert ROUNDS.required_to_beat(0) == 0
    assert ROUNDS.beats(1, 0)
    assert ROUNDS.required_to_beat(25) == 26
    assert not ROUNDS.beats(25, 25)
    assert ROUNDS.beats(26, 25)


def test_tie_policy_is_configurable():
    rules = AuctionRules(accept_ties=True)
    assert rules.beats(25, 25)
    assert not rules.beats(24, 25)


def test_continuous_preset_requires_ten_percent():
    assert CONTINUOUS.required_to_beat(100) == 110
    assert CONTINUOUS.required_to_beat(101) == 112  # rounded up
    assert not CONTINUOUS.beats(109, 100)
    assert CONTINUOUS.beats(110, 100)


def test_continuous_auction_cannot_refund():
    with pytest.raises(ValueError):
        AuctionRules(windowed=False, require_refunds=True)


def test_check_outbid_echoes_current_highest():
    with pytest.raises(OutbidError) as exc:
        ROUNDS.check_outbid(20, 25, "25")
    assert exc.value.public_message == "Bid must be higher than current highest: $25"

    with pytest.raises(OutbidError) as exc:
        CONTINUOUS.check_outbid(105, 100, "100")
    assert exc.value.public_message == "Bid must be at least 10% higher than current highest: $100"


def test_slot_phase():
    assert slot_phase(10, 9, bidding_open=False, is_active=True) == SlotPhase.PENDING_FINALIZATION
    assert slot_phase(10, 10, bidding_open=True, is_active=True) == SlotPhase.BIDDING_OPEN
    assert slot_phase(10, 10, bidding_open=False, is_active=True) == SlotPhase.OCCUPIED
    assert slot_phase(10, 10, bidding_open=False, is_active=False) == SlotPhase.BIDDING_CLOSED


def test_format_time_remaining():
    assert format_time_remaining(25 * 86400 + 3 * HOUR) == "25d 3h remaining"
    assert format_time_remaining(2 * HOUR + 5 * 60) == "2h 5m remaining"
    assert format_time_remaining(125) == "2m 5s remaining"
    assert format_time_remaining(-5) == "0m 0s remaining"


def test_countdown_decrements_locally_and_resyncs():
    now = [1000.0]
    countdown = Countdown(clock=lambda: now[0])
    assert not countdown.synced
    assert countdown.remaining() == 0

    countdown.resync(60)
    now[0] += 15
    assert countdown.remaining() == 45

    now[0] += 100
    assert countdown.remaining() == 0

    countdown.resync(30)
    assert countdown.remaining() == 30
