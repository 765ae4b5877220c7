"""claimdrop - single-use airdrop claim issuance service.

Issues one SPL token transfer transaction per whitelisted wallet and tracks
each entitlement through a two-phase reserve/confirm protocol so that no
allocation is ever paid out twice.
"""

__version__ = "0.1.0"
