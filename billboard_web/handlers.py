#!/usr/bin/env python3
"""
Request handlers for the billboard API

Each handler takes already-parsed request data plus the auction authority
and returns the JSON-ready response body. Handlers raise billboard.errors
exceptions; the Flask routes in index.py turn those into HTTP responses.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Hashable, Optional

from billboard.authority import AuctionAuthority, BidRequest, SlotState
from billboard.billboard_api import REFUND_METHOD
from billboard.common import format_usd, from_units, is_valid_address, to_decimal, to_units
from billboard.config import MAX_BID_UNITS, SLOT_MAIN, TITLE_MAX_LENGTH, Settings
from billboard.errors import (
    AlreadyFinalizedError,
    BillboardError,
    OutbidError,
    UpstreamTimeoutError,
    ValidationError,
    WindowClosedError,
)
from billboard.pinata import PinataClient, validate_upload
from billboard.rounds import slot_phase

logger = logging.getLogger(__name__)


def gather(calls: Dict[Hashable, Callable[[], Any]], timeout: float) -> Dict[Hashable, Any]:
    """
    Run independent read calls concurrently and wait for all of them.

    The first failure fails the whole batch; calls still running after
    `timeout` seconds raise UpstreamTimeoutError.
    """
    pool = ThreadPoolExecutor(max_workers=max(1, len(calls)))
    try:
        futures = {key: pool.submit(fn) for key, fn in calls.items()}
        done, not_done = wait(futures.values(), timeout=timeout, return_when=FIRST_EXCEPTION)
        for future in done:
            error = future.exception()
            if error is not None:
                raise error
        if not_done:
            raise UpstreamTimeoutError(detail=f"{len(not_done)} of {len(futures)} reads still pending after {timeout}s")
        return {key: future.result() for key, future in futures.items()}
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def _usd(raw: int, settings: Settings) -> float:
    return float(from_units(raw, settings.token_decimals))


def _usd_text(raw: int, settings: Settings) -> str:
    return format_usd(from_units(raw, settings.token_decimals))


def parse_slot(value: Any, settings: Settings) -> int:
    valid = ", ".join(f"{s} ({settings.slot_name(s)})" for s in settings.slots)
    if isinstance(value, bool) or not isinstance(value, int) or value not in settings.slots:
        raise ValidationError(f"Invalid slot. Use {valid}")
    return value


def validate_bid(payload: Dict[str, Any], settings: Settings) -> BidRequest:
    """Local checks done before anything is sent to the authority"""
    slot = parse_slot(payload.get("slot", SLOT_MAIN), settings)

    advertiser = payload.get("advertiser")
    if not is_valid_address(advertiser):
        raise ValidationError("Invalid advertiser address")

    image_url = payload.get("imageUrl")
    if not isinstance(image_url, str) or not image_url.strip():
        raise ValidationError("Image URL required")

    link_url = payload.get("linkUrl")
    if link_url is None:
        link_url = ""
    if not isinstance(link_url, str):
        raise ValidationError("Link URL must be a string")

    title = payload.get("title")
    if not isinstance(title, str) or not title or len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title required (max {TITLE_MAX_LENGTH} chars)")

    min_bid = settings.min_bid(slot)
    below_min = ValidationError(f"Bid must be at least ${format_usd(min_bid)} for this slot")
    raw_amount = payload.get("bidAmount")
    if isinstance(raw_amount, bool) or not isinstance(raw_amount, (int, float)):
        raise below_min
    try:
        amount = to_decimal(raw_amount)
    except ValueError:
        raise below_min
    if amount < min_bid:
        raise below_min
    try:
        units = to_units(amount, settings.token_decimals)
    except ArithmeticError:
        raise ValidationError("Bid amount too large")
    if units > MAX_BID_UNITS:
        raise ValidationError("Bid amount too large")

    return BidRequest(
        slot=slot,
        advertiser=advertiser,
        image_url=image_url,
        link_url=link_url,
        title=title,
        amount=units,
    )


def execute_place_bid(authority: AuctionAuthority, settings: Settings, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a bid, check it against the live round and submit it on behalf of the advertiser"""
    bid = validate_bid(payload, settings)
    rules = settings.rules

    if settings.bid_preflight:
        status = authority.read_bidding_status()
        if rules.windowed and not status.bidding_open:
            raise WindowClosedError(status.time_until_bidding)
        highest = status.highest(bid.slot).amount
        rules.check_outbid(bid.amount, highest, _usd_text(highest, settings))

    try:
        tx_hash = authority.submit_bid(bid)
    except OutbidError as e:
        if e.current_highest is not None:
            raise
        # the authority rejected without saying what it is up against
        highest = authority.read_bidding_status().highest(bid.slot).amount
        raise OutbidError(_usd_text(highest, settings), rules.min_increment_percent, detail=e.detail) from e

    logger.info("Bid placed on slot %s for %s by %s: %s",
                bid.slot, _usd_text(bid.amount, settings), bid.advertiser, tx_hash)
    return {"success": True, "transactionHash": tx_hash}


def _slot_body(state: SlotState, minimum: int, phase: str, settings: Settings) -> Dict[str, Any]:
    ad = state.ad
    return {
        "slot": state.slot,
        "advertiser": ad.advertiser if ad else None,
        "imageUrl": ad.image_url if ad else "",
        "linkUrl": ad.link_url if ad else "",
        "title": ad.title if ad else "",
        "bidAmount": _usd(ad.bid_amount, settings) if ad else 0,
        "roundId": ad.round_id if ad else None,
        "timeRemaining": state.time_remaining,
        "isActive": state.is_active,
        "minimumBid": _usd(minimum, settings),
        "phase": phase,
    }


def fetch_billboard(authority: AuctionAuthority, settings: Settings) -> Dict[str, Any]:
    """Aggregate slots, bidding window and stats into one snapshot"""
    calls = {"bidding": authority.read_bidding_status, "stats": authority.read_stats}
    for slot in settings.slots:
        calls[("slot", slot)] = lambda s=slot: authority.read_slot_state(s)
        calls[("min", slot)] = lambda s=slot: authority.read_minimum_bid(s)
        calls[("final", slot)] = lambda s=slot: authority.read_last_finalized_round(s)
    results = gather(calls, timeout=settings.upstream_timeout)

    bidding = results["bidding"]
    stats = results["stats"]
    slots = {}
    highest_bids = {}
    for slot in settings.slots:
        name = settings.slot_name(slot)
        state = results[("slot", slot)]
        phase = slot_phase(bidding.current_round_id, results[("final", slot)],
                           bidding.bidding_open, state.is_active)
        slots[name] = _slot_body(state, results[("min", slot)], phase.value, settings)
        highest = bidding.highest(slot)
        highest_bids[name] = {"amount": _usd(highest.amount, settings), "bidder": highest.bidder}

    return {
        "slots": slots,
        "bidding": {
            "biddingOpen": bidding.bidding_open,
            "currentRoundId": bidding.current_round_id,
            "nextRoundId": bidding.next_round_id,
            "timeUntilBidding": bidding.time_until_bidding,
            "timeUntilNextRound": bidding.time_until_next_round,
            "highestBids": highest_bids,
        },
        "stats": {
            "totalRevenue": _usd(stats.total_revenue, settings),
            "totalBurned": stats.total_burned,
            "totalAds": stats.total_ads,
        },
    }


def execute_finalize(authority: AuctionAuthority, settings: Settings, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Finalize the current round for one slot, or all slots when none is given.

    Slots are settled independently: an already-settled round counts as
    success and a failure on one slot does not stop the others.
    """
    slot = payload.get("slot")
    slots = settings.slots if slot is None else (parse_slot(slot, settings),)

    results = []
    for s in slots:
        try:
            tx_hash = authority.finalize_round(s)
            results.append({"slot": s, "success": True, "hash": tx_hash})
            logger.info("Finalized slot %s: %s", s, tx_hash)
        except AlreadyFinalizedError:
            results.append({"slot": s, "success": True, "alreadyFinalized": True, "error": "Already finalized"})
        except BillboardError as e:
            logger.warning("Finalize slot %s failed: %s", s, e.detail or e.public_message)
            results.append({"slot": s, "success": False, "error": e.public_message})
        except Exception:
            logger.exception("Finalize slot %s failed", s)
            results.append({"slot": s, "success": False, "error": "Failed to finalize round"})
    return {"results": results}


def fetch_finalization_status(authority: AuctionAuthority, settings: Settings) -> Dict[str, Any]:
    calls = {"bidding": authority.read_bidding_status}
    for slot in settings.slots:
        calls[slot] = lambda s=slot: authority.read_last_finalized_round(s)
    results = gather(calls, timeout=settings.upstream_timeout)

    current_round_id = results["bidding"].current_round_id
    return {
        "currentRoundId": current_round_id,
        "slots": {
            settings.slot_name(slot): {
                "lastFinalized": results[slot],
                "needsFinalization": current_round_id > results[slot],
            }
            for slot in settings.slots
        },
    }


def fetch_pending_refund(authority: AuctionAuthority, settings: Settings, address: Optional[str]) -> Dict[str, Any]:
    if not is_valid_address(address):
        raise ValidationError("Invalid address")
    raw = authority.read_pending_refund(address)
    return {
        "address": address,
        "pendingRefund": _usd(raw, settings),
        "pendingRefundRaw": str(raw),
    }


def refund_instructions(settings: Settings) -> Dict[str, Any]:
    """Refunds are claimed by the bidder directly against the contract, never through this server"""
    return {
        "error": f"Refunds must be claimed directly on-chain by calling {REFUND_METHOD} on the contract",
        "contract": settings.contract_id,
        "method": REFUND_METHOD,
    }


def execute_upload(uploader: PinataClient, file, max_bytes: int) -> Dict[str, Any]:
    """
    Pin an uploaded image to IPFS

    Args:
        uploader: Pinning client
        file: werkzeug FileStorage from the multipart 'file' field, or None
        max_bytes: Size ceiling

    Returns:
        Response body with the CID and its two URL forms
    """
    if file is None:
        raise ValidationError("No file provided")

    validate_upload(file.mimetype, 0, max_bytes)
    content = file.read(max_bytes + 1)
    validate_upload(file.mimetype, len(content), max_bytes)

    pinned = uploader.pin_file(file.filename or "upload", content, file.mimetype)
    return {
        "success": True,
        "ipfsHash": pinned.cid,
        "ipfsUrl": pinned.ipfs_url,
        "gatewayUrl": pinned.gateway_url,
    }
