"""Pydantic data models for the claim service.

All data structures are immutable (frozen) after creation. State transitions
replace an entry with an updated copy rather than mutating it in place.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator

from .types import CanonicalId, ClaimState, TokenAmount


class AllocationEntry(BaseModel):
    """One wallet's entitlement and where it is in the claim lifecycle."""

    canonical_id: CanonicalId
    original_id: str  # Address exactly as it appeared in the import source
    amount: TokenAmount
    state: ClaimState = ClaimState.AVAILABLE
    reserved_at: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError(f"Amount must be a positive finite number, got {v}")
        return v

    @property
    def is_available(self) -> bool:
        return self.state == ClaimState.AVAILABLE

    @property
    def is_reserved(self) -> bool:
        return self.state == ClaimState.RESERVED

    def transition(self, state: ClaimState, at: datetime | None = None) -> "AllocationEntry":
        """Return a copy of this entry in ``state``.

        ``reserved_at`` is only kept for reserved entries.
        """
        reserved_at = at if state == ClaimState.RESERVED else None
        return self.model_copy(update={"state": state, "reserved_at": reserved_at})


class ClaimArtifact(BaseModel):
    """A serialized transfer transaction handed to the claimant for signing."""

    canonical_id: CanonicalId
    tx: str  # base64 encoded wire transaction
    amount: TokenAmount

    model_config = {"frozen": True}
