"""Claim issuance protocol."""

from .claims import ClaimIssuanceProtocol

__all__ = ["ClaimIssuanceProtocol"]
