"""
Error taxonomy for the billboard gateway.

Every error carries the HTTP status it maps to and a message that is safe to
show to callers. Upstream detail (RPC errors, contract diagnostics, provider
responses) is kept on the exception for server-side logging only.
"""

import re
from typing import Any, Dict, Optional, Type


class BillboardError(Exception):
    """Base class for all gateway errors"""

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None,
                 extra: Optional[Dict[str, Any]] = None):
        self.public_message = message or self.default_message
        self.detail = detail
        self.extra = extra or {}
        super().__init__(detail or self.public_message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.public_message}
        body.update(self.extra)
        return body


class ValidationError(BillboardError):
    status_code = 400
    default_message = "Invalid request"


class WindowClosedError(BillboardError):
    status_code = 400
    default_message = "Bidding window is closed"

    def __init__(self, time_until_open: Optional[int] = None, detail: Optional[str] = None):
        extra = {}
        if time_until_open is not None:
            extra["timeUntilBiddingOpens"] = time_until_open
        super().__init__(detail=detail, extra=extra)
        self.time_until_open = time_until_open


class OutbidError(BillboardError):
    status_code = 400
    default_message = "Bid must be higher than current highest"

    def __init__(self, current_highest: Optional[str] = None, min_increment_percent: int = 0,
                 detail: Optional[str] = None):
        if min_increment_percent:
            message = f"Bid must be at least {min_increment_percent}% higher than current highest"
        else:
            message = self.default_message
        extra = {}
        if current_highest is not None:
            message = f"{message}: ${current_highest}"
            extra["currentHighest"] = current_highest
        super().__init__(message, detail=detail, extra=extra)
        self.current_highest = current_highest
        self.min_increment_percent = min_increment_percent


class AuthorizationError(BillboardError):
    status_code = 500
    default_message = "Server not authorized"


class AlreadyFinalizedError(BillboardError):
    default_message = "Already finalized"


class ConfigurationError(BillboardError):
    status_code = 500
    default_message = "Server not configured"


class UpstreamFailure(BillboardError):
    status_code = 500
    default_message = "Upstream request failed"


class UpstreamTimeoutError(UpstreamFailure):
    default_message = "Upstream request timed out"


# Contract error codes, as surfaced by Soroban host errors: "Error(Contract, #N)"
CONTRACT_ERRORS: Dict[int, Type[BillboardError]] = {
    1: ValidationError,        # invalid slot
    2: WindowClosedError,      # bidding closed
    3: ValidationError,        # bid below minimum
    4: OutbidError,            # bid too low
    5: AlreadyFinalizedError,  # round already finalized
    6: AuthorizationError,     # unauthorized
    7: ValidationError,        # nothing to withdraw
}

CONTRACT_MESSAGES = {
    1: "Invalid slot",
    3: "Bid below minimum for slot",
    7: "Nothing to withdraw",
}

# Known contract / host messages, checked in order
KNOWN_FRAGMENTS = [
    ("Round already finalized", AlreadyFinalizedError, None),
    ("Bidding not open", WindowClosedError, None),
    ("Bidding window closed", WindowClosedError, None),
    ("Bid below minimum", ValidationError, "Bid below minimum for slot"),
    ("Bid must be 10% higher", OutbidError, None),
    ("Bid too low", OutbidError, None),
    ("Only owner", AuthorizationError, None),
    ("Error(Auth", AuthorizationError, None),
    ("Invalid slot", ValidationError, "Invalid slot"),
]

_CONTRACT_CODE = re.compile(r"Error\(Contract, #(\d+)\)")


def classify_failure(detail: str) -> BillboardError:
    """
    Map an upstream failure description onto the error taxonomy.

    Unrecognised failures collapse into UpstreamFailure so raw upstream text
    never reaches callers.

    Args:
        detail: Upstream error text (RPC error, simulation error, result XDR)

    Returns:
        BillboardError: the exception to raise (not raised here)
    """
    detail = detail or ""
    for fragment, cls, message in KNOWN_FRAGMENTS:
        if fragment in detail:
            return _build(cls, message, detail)

    match = _CONTRACT_CODE.search(detail)
    if match:
        code = int(match.group(1))
        cls = CONTRACT_ERRORS.get(code)
        if cls is not None:
            return _build(cls, CONTRACT_MESSAGES.get(code), detail)

    return UpstreamFailure(detail=detail)


def _build(cls: Type[BillboardError], message: Optional[str], detail: str) -> BillboardError:
    if cls in (WindowClosedError, OutbidError):
        return cls(detail=detail)
    return cls(message, detail=detail)
