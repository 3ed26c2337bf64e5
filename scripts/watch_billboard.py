#!/usr/bin/env python3
"""
Terminal billboard watcher

Polls GET /api/bid every --period seconds and, between polls, counts the
round timer down locally once per second. The local countdown is only a
display aid; every successful poll resyncs it from the server.

Usage:
    python scripts/watch_billboard.py --url http://localhost:5000 [--period 30]
"""

import argparse
import time

import requests

from billboard.rounds import Countdown, format_time_remaining


def fetch(url: str, timeout: int):
    r = requests.get(f"{url.rstrip('/')}/api/bid", timeout=timeout)
    r.raise_for_status()
    return r.json()


def render(info, countdown: Countdown) -> str:
    bidding = info["bidding"]
    parts = []
    for name, slot in info["slots"].items():
        title = slot["title"] if slot["isActive"] else "(empty)"
        parts.append(f"{name}: {title} ${slot['bidAmount']}")
    state = "OPEN" if bidding["biddingOpen"] else "closed"
    return f"round {bidding['currentRoundId']} | bidding {state} | {format_time_remaining(countdown.remaining())} | " + " | ".join(parts)


def main():
    parser = argparse.ArgumentParser(description="Watch the billboard")
    parser.add_argument("--url", default="http://localhost:5000")
    parser.add_argument("--period", type=int, default=30, help="Seconds between server polls")
    parser.add_argument("--timeout", type=int, default=15)
    args = parser.parse_args()

    countdown = Countdown()
    info = None
    next_poll = 0.0
    try:
        while True:
            now = time.monotonic()
            if now >= next_poll:
                try:
                    info = fetch(args.url, args.timeout)
                    countdown.resync(info["bidding"]["timeUntilNextRound"])
                except (requests.RequestException, ValueError, KeyError) as e:
                    print(f"\nWarning: poll failed, keeping local countdown: {e}")
                next_poll = now + args.period
            if info is not None:
                print("\r" + render(info, countdown), end="", flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopped")


if __name__ == "__main__":
    main()
