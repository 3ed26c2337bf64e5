import secrets
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Union

from stellar_sdk import Address, Keypair, Server

Number = Union[int, float, str, Decimal]


@dataclass
class Actor:
    kp: Keypair

    @property
    def public_key(self) -> str:
        return self.kp.public_key


def actor_from_secret(secret: str) -> Actor:
    return Actor(kp=Keypair.from_secret(secret))


def balances(server: Server, pubkey: str) -> Dict[str, str]:
    acct = server.accounts().account_id(pubkey).call()
    out = {}
    for b in acct["balances"]:
        code = "XLM" if b["asset_type"] == "native" else f'{b["asset_code"]}:{b["asset_issuer"]}'
        out[code] = b["balance"]
    return out


def is_valid_address(value) -> bool:
    """True for a Stellar account (G...) or contract (C...) strkey"""
    if not isinstance(value, str) or not value:
        return False
    try:
        Address(value)
    except (ValueError, TypeError):
        return False
    return True


def generate_tx_hash() -> str:
    """Generate a transaction-hash shaped identifier (64-char hex)"""
    return secrets.token_hex(32)


def to_decimal(value: Number) -> Decimal:
    """
    Convert a JSON number or numeric string to Decimal.

    Raises:
        ValueError: if the value is not a finite number (bools are rejected too)
    """
    if isinstance(value, bool):
        raise ValueError("not a number")
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}")
    if not d.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return d


def to_units(amount: Number, decimals: int) -> int:
    """
    Convert a decimal USD amount into minimum-denomination token units.

    Args:
        amount: Amount in whole currency units (e.g. 12.5 for $12.50)
        decimals: Token decimals

    Returns:
        int: Amount in base units; sub-unit precision is truncated
    """
    return int(to_decimal(amount).scaleb(decimals))


def from_units(raw: int, decimals: int) -> Decimal:
    """Convert minimum-denomination token units back to a decimal amount"""
    return Decimal(raw).scaleb(-decimals)


def format_usd(amount: Decimal) -> str:
    """Render an amount without trailing zeros: 10 -> '10', 2.50 -> '2.5'"""
    text = format(amount.normalize(), "f")
    return text if text != "-0" else "0"
