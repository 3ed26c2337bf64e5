#!/usr/bin/env python3
"""
Soroban client tests against a mocked RPC server
"""

import threading
import time
from unittest.mock import MagicMock

import pytest
from stellar_sdk import Account, Address, Keypair, StrKey, scval
from stellar_sdk.exceptions import ConnectionError as SdkConnectionError
from stellar_sdk.exceptions import PrepareTransactionException
from stellar_sdk.soroban_rpc import GetTransactionStatus, SendTransactionStatus

from billboard.authority import BidRequest
from billboard.billboard_api import BillboardAPI
from billboard.config import Settings
from billboard.errors import (
    ConfigurationError,
    OutbidError,
    UpstreamFailure,
    UpstreamTimeoutError,
    ValidationError,
    WindowClosedError,
)

CONTRACT_ID = StrKey.encode_contract(b"\x07" * 32)


@pytest.fixture
def signer():
    return Keypair.random()


@pytest.fixture
def api(signer):
    api = BillboardAPI(CONTRACT_ID, signer, "https://rpc.invalid", Settings().network_passphrase,
                       timeout=5, poll_interval=0)
    api.rpc = MagicMock()
    api.rpc.load_account.return_value = Account(signer.public_key, 1)
    api.rpc.prepare_transaction.side_effect = lambda tx: tx
    return api


def simulated(value):
    result = MagicMock(error=None)
    result.results = [MagicMock(xdr=value.to_xdr())]
    return result


def test_from_settings_requires_credentials():
    with pytest.raises(ConfigurationError) as exc:
        BillboardAPI.from_settings(Settings())
    assert exc.value.detail == "SERVER_SIGNER_SECRET not configured"

    with pytest.raises(ConfigurationError) as exc:
        BillboardAPI.from_settings(Settings(signer_secret=Keypair.random().secret))
    assert exc.value.detail == "BILLBOARD_CONTRACT_ID not configured"


def test_read_is_simulated_and_decoded(api, signer):
    api.rpc.simulate_transaction.return_value = simulated(scval.to_int128(100_000_000))
    assert api.read_minimum_bid(0) == 100_000_000

    api.rpc.load_account.assert_called_with(signer.public_key)
    tx = api.rpc.simulate_transaction.call_args[0][0]
    op = tx.transaction.operations[0]
    assert op.host_function.invoke_contract.function_name.sc_symbol == b"get_min_bid"
    api.rpc.send_transaction.assert_not_called()


def test_simulation_error_is_classified(api):
    api.rpc.simulate_transaction.return_value = MagicMock(
        error="HostError: Error(Contract, #1)", results=None)
    with pytest.raises(ValidationError) as exc:
        api.read_last_finalized_round(9)
    assert exc.value.public_message == "Invalid slot"


def test_slot_state_decoding(api):
    advertiser = Keypair.random().public_key
    api._call = MagicMock(return_value=[
        Address(advertiser), b"ipfs://QmAd", b"https://acme.example", b"Acme",
        250_000_000, 40001, 3600, True,
    ])
    state = api.read_slot_state(0)
    assert state.is_active
    assert state.time_remaining == 3600
    assert state.ad.advertiser == advertiser
    assert state.ad.image_url == "ipfs://QmAd"
    assert state.ad.title == "Acme"
    assert state.ad.bid_amount == 250_000_000
    assert state.ad.round_id == 40001

    api._call = MagicMock(return_value=[None, b"", b"", b"", 0, 0, 0, False])
    empty = api.read_slot_state(1)
    assert empty.ad is None
    assert not empty.is_active


def test_bidding_status_decoding(api):
    bidder = Keypair.random().public_key
    api._call = MagicMock(return_value={
        "bidding_open": True,
        "current_round_id": 40000,
        "next_round_id": 40001,
        "time_until_bidding": 0,
        "time_until_next_round": 900,
        "highest_bids": [[250_000_000, Address(bidder)], [0, None]],
    })
    status = api.read_bidding_status()
    assert status.bidding_open
    assert status.next_round_id == 40001
    assert status.highest(0).amount == 250_000_000
    assert status.highest(0).bidder == bidder
    assert status.highest(1).bidder is None


def test_stats_decoding(api):
    api._call = MagicMock(return_value=[300_000_000, 12_345, 4])
    stats = api.read_stats()
    assert (stats.total_revenue, stats.total_burned, stats.total_ads) == (300_000_000, 12_345, 4)


def test_write_is_prepared_signed_and_confirmed(api):
    api.rpc.send_transaction.return_value = MagicMock(status=SendTransactionStatus.PENDING, hash="ab" * 32)
    api.rpc.get_transaction.side_effect = [
        MagicMock(status=GetTransactionStatus.NOT_FOUND),
        MagicMock(status=GetTransactionStatus.SUCCESS),
    ]
    bid = BidRequest(slot=0, advertiser=Keypair.random().public_key, image_url="ipfs://QmAd",
                     link_url="", title="Acme", amount=120_000_000)

    assert api.submit_bid(bid) == "ab" * 32
    tx = api.rpc.send_transaction.call_args[0][0]
    assert len(tx.signatures) == 1
    op = tx.transaction.operations[0]
    assert op.host_function.invoke_contract.function_name.sc_symbol == b"place_bid_for"
    assert len(op.host_function.invoke_contract.args) == 6
    assert api.rpc.get_transaction.call_count == 2


def test_prepare_failure_is_classified(api):
    response = MagicMock(error="HostError: Error(Contract, #2)")
    api.rpc.prepare_transaction.side_effect = PrepareTransactionException("simulation failed", response)
    with pytest.raises(WindowClosedError):
        api.finalize_round(0)


def test_failed_transaction_is_classified(api):
    api.rpc.send_transaction.return_value = MagicMock(status=SendTransactionStatus.PENDING, hash="cd" * 32)
    api.rpc.get_transaction.return_value = MagicMock(
        status=GetTransactionStatus.FAILED, result_xdr="HostError: Error(Contract, #4)")
    with pytest.raises(OutbidError):
        api.finalize_round(0)


def test_rejected_submission(api):
    api.rpc.send_transaction.return_value = MagicMock(
        status=SendTransactionStatus.ERROR, error_result_xdr="AAAAAAAAAGT////7AAAAAA==")
    with pytest.raises(UpstreamFailure) as exc:
        api.record_burn(10)
    assert exc.value.public_message == "Upstream request failed"


def test_unconfirmed_write_times_out(api):
    api.timeout = 0
    api.rpc.send_transaction.return_value = MagicMock(status=SendTransactionStatus.PENDING, hash="ef" * 32)
    api.rpc.get_transaction.return_value = MagicMock(status=GetTransactionStatus.NOT_FOUND)
    with pytest.raises(UpstreamTimeoutError):
        api.withdraw_revenue(Keypair.random().public_key)


def test_connection_error_is_upstream_failure(api):
    api.rpc.load_account.side_effect = SdkConnectionError("connection refused")
    with pytest.raises(UpstreamFailure) as exc:
        api.read_stats()
    assert "connection refused" in exc.value.detail
    assert "connection refused" not in exc.value.public_message


def test_busy_signer_is_bounded_by_timeout(api):
    api.timeout = 0.05
    api._submit_lock.acquire()
    try:
        with pytest.raises(UpstreamTimeoutError) as exc:
            api.finalize_round(0)
    finally:
        api._submit_lock.release()
    assert "signer busy" in exc.value.detail
    api.rpc.send_transaction.assert_not_called()


def test_queued_writes_do_not_wait_past_their_bound(api):
    api.timeout = 0.2
    api.poll_interval = 0.01
    api.rpc.send_transaction.return_value = MagicMock(status=SendTransactionStatus.PENDING, hash="ef" * 32)
    api.rpc.get_transaction.return_value = MagicMock(status=GetTransactionStatus.NOT_FOUND)
    elapsed = {}
    errors = {}

    def finalize(n):
        started = time.monotonic()
        try:
            api.finalize_round(0)
        except UpstreamTimeoutError as e:
            errors[n] = e.detail
        elapsed[n] = time.monotonic() - started

    threads = [threading.Thread(target=finalize, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(errors) == 4
    assert any("signer busy" in detail for detail in errors.values())
    # one lock wait plus one confirmation wait at most, never a queue of them
    assert max(elapsed.values()) < 0.7
    assert not api._submit_lock.locked()
