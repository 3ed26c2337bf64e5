"""
Configuration for the billboard gateway and operator scripts.

Values come from the environment, optionally seeded from config.env / .env in
the project root. Credentials are not checked at startup; handlers call
`Settings.require` and get a ConfigurationError at request time instead.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv
from stellar_sdk import Network

from billboard.common import to_decimal
from billboard.errors import ConfigurationError
from billboard.rounds import PRESETS, AuctionRules, RoundClock

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

SLOT_MAIN = 0
SLOT_SECONDARY = 1
SLOT_NAMES = {SLOT_MAIN: "main", SLOT_SECONDARY: "secondary"}

MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5MB
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml")

TITLE_MAX_LENGTH = 100

# bids travel to the contract as i128
MAX_BID_UNITS = 2 ** 127 - 1


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def parse_min_bids(raw: str) -> Dict[int, Decimal]:
    """Parse "10,1" into {0: Decimal('10'), 1: Decimal('1')}"""
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    if not parts or len(parts) > len(SLOT_NAMES):
        raise ValueError(f"SLOT_MIN_BIDS must list 1 to {len(SLOT_NAMES)} amounts, got {raw!r}")
    return {slot: to_decimal(p) for slot, p in enumerate(parts)}


def build_rules(env: Mapping[str, str]) -> AuctionRules:
    mode = env.get("AUCTION_MODE", "rounds").strip().lower()
    if mode not in PRESETS:
        raise ValueError(f"AUCTION_MODE must be one of {sorted(PRESETS)}, got {mode!r}")
    preset = PRESETS[mode]
    return AuctionRules(
        windowed=_flag(env.get("WINDOWED"), preset.windowed),
        require_refunds=_flag(env.get("REQUIRE_REFUNDS"), preset.require_refunds),
        min_increment_percent=_int(env, "MIN_INCREMENT_PERCENT", preset.min_increment_percent),
        accept_ties=_flag(env.get("ACCEPT_TIES"), preset.accept_ties),
    )


@dataclass(frozen=True)
class Settings:
    rpc_url: str = "https://soroban-testnet.stellar.org"
    horizon_url: str = "https://horizon-testnet.stellar.org"
    network_passphrase: str = Network.TESTNET_NETWORK_PASSPHRASE
    signer_secret: Optional[str] = None
    contract_id: Optional[str] = None
    pinata_jwt: Optional[str] = None
    pinata_upload_url: str = "https://uploads.pinata.cloud/v3/files"
    ipfs_gateway: str = "https://gateway.pinata.cloud/ipfs"
    min_bids: Dict[int, Decimal] = field(default_factory=lambda: {SLOT_MAIN: Decimal(10), SLOT_SECONDARY: Decimal(1)})
    round_duration: int = 12 * 60 * 60  # 12 hours
    bidding_window: int = 30 * 60  # 30 minutes
    token_decimals: int = 7
    upstream_timeout: int = 30
    rules: AuctionRules = field(default_factory=AuctionRules)
    bid_preflight: bool = True
    authority_backend: str = "soroban"
    usdc_asset: Optional[str] = None
    bb_asset: Optional[str] = None
    log_level: str = "INFO"

    # env var names for the credentials checked by `require`
    REQUIRED_ENV = {
        "signer_secret": "SERVER_SIGNER_SECRET",
        "contract_id": "BILLBOARD_CONTRACT_ID",
        "pinata_jwt": "PINATA_JWT",
        "usdc_asset": "USDC_ASSET",
        "bb_asset": "BB_ASSET",
    }

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        defaults = cls()
        backend = env.get("AUTHORITY_BACKEND", defaults.authority_backend).strip().lower()
        if backend not in ("soroban", "memory"):
            raise ValueError(f"AUTHORITY_BACKEND must be 'soroban' or 'memory', got {backend!r}")

        settings = cls(
            rpc_url=env.get("SOROBAN_RPC", defaults.rpc_url),
            horizon_url=env.get("HORIZON_URL", defaults.horizon_url),
            network_passphrase=env.get("NETWORK_PASSPHRASE", defaults.network_passphrase),
            signer_secret=env.get("SERVER_SIGNER_SECRET") or None,
            contract_id=env.get("BILLBOARD_CONTRACT_ID") or None,
            pinata_jwt=env.get("PINATA_JWT") or None,
            pinata_upload_url=env.get("PINATA_UPLOAD_URL", defaults.pinata_upload_url),
            ipfs_gateway=env.get("IPFS_GATEWAY", defaults.ipfs_gateway).rstrip("/"),
            min_bids=parse_min_bids(env["SLOT_MIN_BIDS"]) if env.get("SLOT_MIN_BIDS") else defaults.min_bids,
            round_duration=_int(env, "ROUND_DURATION", defaults.round_duration),
            bidding_window=_int(env, "BIDDING_WINDOW", defaults.bidding_window),
            token_decimals=_int(env, "TOKEN_DECIMALS", defaults.token_decimals),
            upstream_timeout=_int(env, "UPSTREAM_TIMEOUT", defaults.upstream_timeout),
            rules=build_rules(env),
            bid_preflight=_flag(env.get("BID_PREFLIGHT"), defaults.bid_preflight),
            authority_backend=backend,
            usdc_asset=env.get("USDC_ASSET") or None,
            bb_asset=env.get("BB_ASSET") or None,
            log_level=env.get("LOG_LEVEL", defaults.log_level),
        )
        # fail fast on inconsistent timing
        settings.round_clock()
        return settings

    @property
    def slots(self) -> Tuple[int, ...]:
        return tuple(sorted(self.min_bids))

    def slot_name(self, slot: int) -> str:
        return SLOT_NAMES[slot]

    def min_bid(self, slot: int) -> Decimal:
        return self.min_bids[slot]

    def round_clock(self) -> RoundClock:
        return RoundClock(self.round_duration, self.bidding_window)

    def require(self, name: str) -> str:
        """Return a credential or raise ConfigurationError naming the missing env var"""
        value = getattr(self, name)
        if not value:
            raise ConfigurationError(detail=f"{self.REQUIRED_ENV.get(name, name)} not configured")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process from config.env, .env and the environment"""
    load_dotenv(os.path.join(PROJECT_ROOT, "config.env"))
    load_dotenv(os.path.join(PROJECT_ROOT, ".env"))
    return Settings.from_env()
