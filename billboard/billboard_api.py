#!/usr/bin/env python3
"""
Billboard API Python Wrapper

Soroban client for the billboard auction contract. Read calls are simulated
and their return value decoded; write calls are prepared, signed by the
server signer, submitted and polled until the ledger confirms them.

The server signer acts on behalf of advertisers (place_bid_for), so every
write goes through one key. Submissions are serialized per process to keep
sequence numbers from colliding.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, List, Optional

from stellar_sdk import Keypair, SorobanServer, TransactionBuilder, scval, xdr
from stellar_sdk.client.requests_client import RequestsClient
from stellar_sdk.exceptions import ConnectionError as SdkConnectionError
from stellar_sdk.exceptions import PrepareTransactionException, SdkError
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus

from billboard.authority import (
    Ad,
    AuctionAuthority,
    BiddingStatus,
    BidRequest,
    HighestBid,
    SlotState,
    Stats,
)
from billboard.config import Settings
from billboard.errors import (
    BillboardError,
    UpstreamFailure,
    UpstreamTimeoutError,
    classify_failure,
)

logger = logging.getLogger(__name__)

REFUND_METHOD = "claim_refund()"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _address(value: Any) -> Optional[str]:
    """Contract addresses decode to stellar_sdk.Address; void decodes to None"""
    if value is None:
        return None
    return getattr(value, "address", None) or str(value)


class BillboardAPI(AuctionAuthority):
    """Python wrapper for the billboard auction contract"""

    def __init__(self, contract_id: str, signer: Keypair, rpc_url: str, network_passphrase: str,
                 timeout: int = 30, slots=(0, 1), poll_interval: float = 1.0):
        """
        Initialize the Billboard API client

        Args:
            contract_id: The deployed contract ID
            signer: Server keypair used to sign every call
            rpc_url: Soroban RPC URL
            network_passphrase: Network passphrase
            timeout: Upper bound in seconds for each RPC request and for
                waiting on transaction confirmation
            slots: Slot ids the contract serves, in order
            poll_interval: Seconds between confirmation polls
        """
        self._contract_id = contract_id
        self.signer = signer
        self.network_passphrase = network_passphrase
        self.timeout = timeout
        self.slots = tuple(slots)
        self.poll_interval = poll_interval
        client = RequestsClient(num_retries=0, request_timeout=timeout, post_timeout=timeout)
        self.rpc = SorobanServer(rpc_url, client=client)
        self._submit_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BillboardAPI":
        signer = Keypair.from_secret(settings.require("signer_secret"))
        return cls(
            contract_id=settings.require("contract_id"),
            signer=signer,
            rpc_url=settings.rpc_url,
            network_passphrase=settings.network_passphrase,
            timeout=settings.upstream_timeout,
            slots=settings.slots,
        )

    @property
    def contract_id(self) -> str:
        return self._contract_id

    @contextmanager
    def _upstream(self, function_name: str):
        """Translate SDK failures into the billboard error taxonomy"""
        try:
            yield
        except BillboardError:
            raise
        except PrepareTransactionException as e:
            response = getattr(e, "simulate_transaction_response", None)
            detail = getattr(response, "error", None) or str(e)
            raise classify_failure(f"{function_name}: {detail}") from e
        except SdkConnectionError as e:
            raise UpstreamFailure(detail=f"{function_name}: {e}") from e
        except SdkError as e:
            raise classify_failure(f"{function_name}: {e}") from e

    def _load_account(self):
        """Load signer account for transaction building"""
        return self.rpc.load_account(self.signer.public_key)

    def _build_tx(self, function_name: str, parameters: List[xdr.SCVal]):
        account = self._load_account()
        return (TransactionBuilder(account, network_passphrase=self.network_passphrase, base_fee=100)
                .append_invoke_contract_function_op(
                    contract_id=self._contract_id,
                    function_name=function_name,
                    parameters=parameters)
                .set_timeout(self.timeout)
                .build())

    def _call(self, function_name: str, parameters: List[xdr.SCVal]) -> Any:
        """Simulate a read-only call and return its decoded return value"""
        with self._upstream(function_name):
            tx = self._build_tx(function_name, parameters)
            result = self.rpc.simulate_transaction(tx)
            if result.error or not result.results:
                raise classify_failure(f"{function_name}: simulation failed: {result.error}")
            return scval.to_native(xdr.SCVal.from_xdr(result.results[0].xdr))

    def _invoke(self, function_name: str, parameters: List[xdr.SCVal]) -> str:
        """Submit a write call and wait for confirmation; returns the transaction hash"""
        if not self._submit_lock.acquire(timeout=self.timeout):
            raise UpstreamTimeoutError(detail=f"{function_name}: signer busy for {self.timeout}s")
        try:
            with self._upstream(function_name):
                tx = self._build_tx(function_name, parameters)
                tx = self.rpc.prepare_transaction(tx)
                tx.sign(self.signer)
                send_result = self.rpc.send_transaction(tx)
                if send_result.status == SendTransactionStatus.ERROR:
                    raise classify_failure(f"{function_name}: rejected: {send_result.error_result_xdr}")
                if send_result.status == SendTransactionStatus.TRY_AGAIN_LATER:
                    raise UpstreamFailure(detail=f"{function_name}: RPC asked to try again later")
                logger.info("Submitted %s: %s", function_name, send_result.hash)
                return self._wait_for(send_result.hash, function_name)
        finally:
            self._submit_lock.release()

    def _wait_for(self, tx_hash: str, function_name: str) -> str:
        deadline = time.monotonic() + self.timeout
        while True:
            response = self.rpc.get_transaction(tx_hash)
            if response.status == GetTransactionStatus.SUCCESS:
                return tx_hash
            if response.status == GetTransactionStatus.FAILED:
                raise classify_failure(f"{function_name}: failed: {response.result_xdr}")
            if time.monotonic() >= deadline:
                raise UpstreamTimeoutError(detail=f"{function_name}: {tx_hash} not confirmed after {self.timeout}s")
            time.sleep(self.poll_interval)

    # reads

    def read_slot_state(self, slot: int) -> SlotState:
        """
        Get the occupant of a slot

        The contract returns
        [advertiser, image_url, link_url, title, bid_amount, round_id, time_remaining, is_active]
        with a void advertiser when the slot has never been won.
        """
        values = self._call("get_slot_ad", [scval.to_uint32(slot)])
        advertiser, image_url, link_url, title, bid_amount, round_id, time_remaining, is_active = values
        ad = None
        if advertiser is not None:
            ad = Ad(
                advertiser=_address(advertiser),
                image_url=_text(image_url),
                link_url=_text(link_url),
                title=_text(title),
                bid_amount=int(bid_amount),
                round_id=int(round_id),
            )
        return SlotState(slot=slot, ad=ad, is_active=bool(is_active), time_remaining=int(time_remaining))

    def read_bidding_status(self) -> BiddingStatus:
        status = self._call("get_bidding_status", [])
        highest_bids = {}
        for slot, entry in zip(self.slots, status.get("highest_bids") or []):
            amount, bidder = entry
            highest_bids[slot] = HighestBid(amount=int(amount or 0), bidder=_address(bidder))
        return BiddingStatus(
            bidding_open=bool(status["bidding_open"]),
            current_round_id=int(status["current_round_id"]),
            next_round_id=int(status["next_round_id"]),
            time_until_bidding=int(status["time_until_bidding"]),
            time_until_next_round=int(status["time_until_next_round"]),
            highest_bids=highest_bids,
        )

    def read_stats(self) -> Stats:
        total_revenue, total_burned, total_ads = self._call("get_stats", [])
        return Stats(int(total_revenue), int(total_burned), int(total_ads))

    def read_minimum_bid(self, slot: int) -> int:
        return int(self._call("get_min_bid", [scval.to_uint32(slot)]))

    def read_last_finalized_round(self, slot: int) -> int:
        return int(self._call("last_finalized_round", [scval.to_uint32(slot)]))

    def read_pending_refund(self, address: str) -> int:
        return int(self._call("get_pending_refund", [scval.to_address(address)]) or 0)

    # writes

    def submit_bid(self, bid: BidRequest) -> str:
        """Place a bid on behalf of an advertiser"""
        return self._invoke("place_bid_for", [
            scval.to_uint32(bid.slot),
            scval.to_address(bid.advertiser),
            scval.to_string(bid.image_url),
            scval.to_string(bid.link_url),
            scval.to_string(bid.title),
            scval.to_int128(bid.amount),
        ])

    def finalize_round(self, slot: int) -> str:
        return self._invoke("finalize_round", [scval.to_uint32(slot)])

    def withdraw_revenue(self, to: str) -> str:
        return self._invoke("withdraw_revenue", [scval.to_address(to)])

    def record_burn(self, amount: int) -> str:
        return self._invoke("record_burn", [scval.to_int128(amount)])
