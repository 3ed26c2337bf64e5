"""
Billboard auction client library

Shared pieces used by the web API and the operator scripts: configuration,
the auction authority port and its Soroban / in-memory implementations,
round timing rules and IPFS pinning.
"""

__version__ = "0.3.0"
