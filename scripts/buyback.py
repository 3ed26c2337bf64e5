#!/usr/bin/env python3
"""
Buyback & Burn Script

This script:
1. Withdraws USDC revenue from the billboard contract to the operator
2. Swaps the USDC for BB on the Stellar DEX (path payment)
3. Burns the BB by sending it back to its issuer
4. Records the burn on the billboard contract

Without BB_ASSET configured it stops after the withdrawal (testnet mode).

Usage:
    python scripts/buyback.py [--dry-run] [--min-out 0.0000001]
"""

import argparse
import sys
from decimal import Decimal

from stellar_sdk import Asset, Server, TransactionBuilder
from stellar_sdk.exceptions import BaseHorizonError

from billboard.billboard_api import BillboardAPI
from billboard.common import actor_from_secret, balances, from_units, to_units
from billboard.config import get_settings
from billboard.errors import BillboardError, ValidationError
from billboard.logger import setup_logging

ASSET_DECIMALS = 7  # classic Stellar assets


def parse_asset(text: str) -> Asset:
    """Parse CODE:ISSUER"""
    code, _, issuer = text.partition(":")
    if not code or not issuer:
        raise ValueError(f"Asset must be CODE:ISSUER, got {text!r}")
    return Asset(code, issuer)


def asset_balance(server: Server, pubkey: str, asset: Asset) -> Decimal:
    return Decimal(balances(server, pubkey).get(f"{asset.code}:{asset.issuer}", "0"))


def print_stats(api: BillboardAPI, decimals: int):
    stats = api.read_stats()
    print(f"  Total Revenue: {from_units(stats.total_revenue, decimals)} USDC")
    print(f"  Total Burned: {from_units(stats.total_burned, ASSET_DECIMALS)} BB")
    print(f"  Total Ads: {stats.total_ads}")


def submit(server: Server, operator, settings, build):
    account = server.load_account(operator.public_key)
    builder = TransactionBuilder(account, network_passphrase=settings.network_passphrase, base_fee=100)
    tx = build(builder).set_timeout(60).build()
    tx.sign(operator.kp)
    return server.submit_transaction(tx)["hash"]


def main() -> int:
    parser = argparse.ArgumentParser(description="Billboard buyback and burn")
    parser.add_argument("--dry-run", action="store_true", help="Only print what would happen")
    parser.add_argument("--min-out", default="0.0000001", help="Minimum BB to accept from the swap")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        operator = actor_from_secret(settings.require("signer_secret"))
        api = BillboardAPI.from_settings(settings)
        usdc = parse_asset(settings.require("usdc_asset"))
    except (BillboardError, ValueError) as e:
        print(f"ERROR: {getattr(e, 'detail', None) or e}")
        return 1

    server = Server(settings.horizon_url)

    print("=" * 60)
    print("Billboard - Buyback & Burn")
    print("=" * 60)
    print("Operator:", operator.public_key)
    print("Billboard:", api.contract_id)
    print("")
    print("Current Stats:")
    print_stats(api, settings.token_decimals)

    if args.dry_run:
        print("\n[DRY RUN] Would withdraw revenue, swap to BB, burn and record the burn.")
        return 0

    # Step 1: Withdraw revenue
    print("\n1. Withdrawing revenue to operator...")
    usdc_before = asset_balance(server, operator.public_key, usdc)
    try:
        tx_hash = api.withdraw_revenue(operator.public_key)
    except ValidationError:
        print("\nNo revenue to withdraw. Exiting.")
        return 0
    except BillboardError as e:
        print(f"   Withdraw failed: {e.public_message} ({e.detail})")
        return 1
    withdrawn = asset_balance(server, operator.public_key, usdc) - usdc_before
    print("   Done! TX:", tx_hash)
    print(f"   Withdrawn: {withdrawn} USDC")

    if not settings.bb_asset:
        print("\n2. [TESTNET MODE] Skipping swap - BB_ASSET not configured")
        print("   Set BB_ASSET=CODE:ISSUER to swap, burn and record the burn")
        return 0
    if withdrawn <= 0:
        print("\nNothing arrived from the withdrawal. Exiting.")
        return 0

    bb = parse_asset(settings.bb_asset)

    # Step 2: Swap USDC -> BB
    print("\n2. Swapping USDC for BB on the DEX...")
    bb_before = asset_balance(server, operator.public_key, bb)
    try:
        swap_hash = submit(server, operator, settings, lambda b: b.append_path_payment_strict_send_op(
            destination=operator.public_key,
            send_asset=usdc,
            send_amount=str(withdrawn),
            dest_asset=bb,
            dest_min=args.min_out,
            path=[],
        ))
    except BaseHorizonError as e:
        print("   Swap failed:", e)
        return 1
    bought = asset_balance(server, operator.public_key, bb) - bb_before
    print("   Swap complete! TX:", swap_hash)
    print(f"   Bought: {bought} BB")

    # Step 3: Burn BB by returning it to the issuer
    print("\n3. Burning BB tokens...")
    try:
        burn_hash = submit(server, operator, settings, lambda b: b.append_payment_op(
            destination=bb.issuer,
            asset=bb,
            amount=str(bought),
        ))
    except BaseHorizonError as e:
        print("   Burn failed:", e)
        return 1
    print("   Burned! TX:", burn_hash)

    # Step 4: Record burn on the billboard
    print("\n4. Recording burn on billboard contract...")
    try:
        record_hash = api.record_burn(to_units(bought, ASSET_DECIMALS))
    except BillboardError as e:
        print(f"   Record failed: {e.public_message} ({e.detail})")
        return 1
    print("   Recorded! TX:", record_hash)

    print("\n" + "=" * 60)
    print("BUYBACK COMPLETE")
    print("=" * 60)
    print_stats(api, settings.token_decimals)
    return 0


if __name__ == "__main__":
    sys.exit(main())
