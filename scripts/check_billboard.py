#!/usr/bin/env python3
"""
Print the billboard's live state: bidding window, slot occupants, stats and
the server signer's balances.
"""

import sys

from stellar_sdk import Server

from billboard.billboard_api import BillboardAPI
from billboard.common import actor_from_secret, balances
from billboard.config import get_settings
from billboard.errors import BillboardError
from billboard.rounds import format_time_remaining
from billboard_web.handlers import fetch_billboard


def main():
    settings = get_settings()

    try:
        api = BillboardAPI.from_settings(settings)
        info = fetch_billboard(api, settings)
    except BillboardError as e:
        print(f"ERROR: {e.public_message} ({e.detail})")
        sys.exit(1)

    bidding = info["bidding"]
    print("=" * 60)
    print("Billboard Status")
    print("=" * 60)
    print(f"Contract: {api.contract_id}")
    print(f"Round: {bidding['currentRoundId']} (next {bidding['nextRoundId']})")
    if bidding["biddingOpen"]:
        print(f"Bidding: OPEN, closes in {format_time_remaining(bidding['timeUntilNextRound'])}")
    else:
        print(f"Bidding: closed, opens in {format_time_remaining(bidding['timeUntilBidding'])}")

    for name, slot in info["slots"].items():
        print(f"\n[{name}] phase={slot['phase']} min bid ${slot['minimumBid']}")
        if slot["isActive"]:
            print(f"   {slot['title']} by {slot['advertiser']}")
            print(f"   ${slot['bidAmount']} USDC, {format_time_remaining(slot['timeRemaining'])}")
        else:
            print("   (empty)")
        highest = bidding["highestBids"][name]
        if highest["bidder"]:
            print(f"   Highest bid for next round: ${highest['amount']} by {highest['bidder']}")

    stats = info["stats"]
    print("\nStats:")
    print(f"   Total Revenue: ${stats['totalRevenue']} USDC")
    print(f"   Total Burned: {stats['totalBurned']}")
    print(f"   Total Ads: {stats['totalAds']}")

    signer = actor_from_secret(settings.require("signer_secret"))
    print(f"\nServer signer {signer.public_key}:")
    for code, amount in balances(Server(settings.horizon_url), signer.public_key).items():
        print(f"   {code}: {amount}")


if __name__ == "__main__":
    main()
