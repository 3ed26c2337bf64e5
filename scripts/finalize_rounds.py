#!/usr/bin/env python3
"""
Round finalizer

Settles the current round on the billboard contract for every slot (or one
slot with --slot). Meant to run from cron shortly after each round boundary;
running it again for a settled round is harmless.

Usage:
    python scripts/finalize_rounds.py [--slot N]

Exit code is 1 if any slot failed to finalize.
"""

import argparse
import sys

from billboard.billboard_api import BillboardAPI
from billboard.config import get_settings
from billboard.errors import BillboardError
from billboard.logger import setup_logging
from billboard_web.handlers import execute_finalize, fetch_finalization_status


def main() -> int:
    parser = argparse.ArgumentParser(description="Finalize billboard rounds")
    parser.add_argument("--slot", type=int, default=None, help="Slot to finalize (default: all)")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        api = BillboardAPI.from_settings(settings)
        status = fetch_finalization_status(api, settings)
        print(f"Current round: {status['currentRoundId']}")
        for name, slot in status["slots"].items():
            flag = "needs finalization" if slot["needsFinalization"] else "up to date"
            print(f"  {name}: last finalized {slot['lastFinalized']} ({flag})")

        payload = {} if args.slot is None else {"slot": args.slot}
        results = execute_finalize(api, settings, payload)["results"]
    except BillboardError as e:
        print(f"ERROR: {e.public_message} ({e.detail})")
        return 1

    failed = 0
    for r in results:
        if r.get("alreadyFinalized"):
            print(f"Slot {r['slot']}: already finalized")
        elif r["success"]:
            print(f"Slot {r['slot']}: finalized, tx {r['hash']}")
        else:
            failed += 1
            print(f"Slot {r['slot']}: FAILED - {r['error']}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
