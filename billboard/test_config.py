from decimal import Decimal

import pytest

from billboard.config import Settings, parse_min_bids
from billboard.errors import ConfigurationError
from billboard.rounds import CONTINUOUS, ROUNDS


def test_defaults():
    settings = Settings.from_env({})
    assert settings.min_bids == {0: Decimal(10), 1: Decimal(1)}
    assert settings.slots == (0, 1)
    assert settings.round_duration == 12 * 60 * 60
    assert settings.bidding_window == 30 * 60
    assert settings.rules == ROUNDS
    assert settings.bid_preflight
    assert settings.authority_backend == "soroban"
    assert settings.signer_secret is None


def test_from_env():
    settings = Settings.from_env({
        "SOROBAN_RPC": "http://localhost:8000/soroban/rpc",
        "SERVER_SIGNER_SECRET": "SSECRET",
        "BILLBOARD_CONTRACT_ID": "CCONTRACT",
        "SLOT_MIN_BIDS": "25, 2.5",
        "ROUND_DURATION": "3600",
        "BIDDING_WINDOW": "600",
        "IPFS_GATEWAY": "https://ipfs.example/ipfs/",
        "BID_PREFLIGHT": "false",
        "AUTHORITY_BACKEND": "memory",
    })
    assert settings.rpc_url == "http://localhost:8000/soroban/rpc"
    assert settings.require("signer_secret") == "SSECRET"
    assert settings.min_bid(1) == Decimal("2.5")
    assert settings.round_clock().round_duration == 3600
    assert settings.ipfs_gateway == "https://ipfs.example/ipfs"
    assert not settings.bid_preflight
    assert settings.authority_backend == "memory"


def test_auction_mode_presets():
    assert Settings.from_env({"AUCTION_MODE": "continuous"}).rules == CONTINUOUS
    rules = Settings.from_env({"ACCEPT_TIES": "yes", "MIN_INCREMENT_PERCENT": "5"}).rules
    assert rules.accept_ties
    assert rules.min_increment_percent == 5
    assert rules.windowed

    with pytest.raises(ValueError):
        Settings.from_env({"AUCTION_MODE": "dutch"})
    with pytest.raises(ValueError):
        Settings.from_env({"AUCTION_MODE": "continuous", "REQUIRE_REFUNDS": "1"})


@pytest.mark.parametrize("env", [
    {"ROUND_DURATION": "abc"},
    {"BIDDING_WINDOW": "0"},
    {"ROUND_DURATION": "600", "BIDDING_WINDOW": "1200"},
    {"AUTHORITY_BACKEND": "sqlite"},
    {"SLOT_MIN_BIDS": "10,1,1"},
])
def test_invalid_env_fails_fast(env):
    with pytest.raises(ValueError):
        Settings.from_env(env)


def test_parse_min_bids():
    assert parse_min_bids("10") == {0: Decimal(10)}
    with pytest.raises(ValueError):
        parse_min_bids("ten,1")


def test_require_names_missing_env_var():
    with pytest.raises(ConfigurationError) as exc:
        Settings().require("pinata_jwt")
    assert exc.value.public_message == "Server not configured"
    assert exc.value.detail == "PINATA_JWT not configured"
