"""Type definitions and enums for the claim service."""

from decimal import Decimal
from enum import Enum


class ClaimState(str, Enum):
    """Lifecycle state of a single allocation entry."""

    AVAILABLE = "available"   # Eligible, no transaction issued yet
    RESERVED = "reserved"     # Transaction issued, awaiting confirmation
    CONSUMED = "consumed"     # Confirmed, terminal

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        names = {
            self.AVAILABLE: "Available",
            self.RESERVED: "Reserved",
            self.CONSUMED: "Consumed",
        }
        return names.get(self, self.value)


# Type aliases for common patterns
CanonicalId = str       # Normalized base58 wallet address
TokenAmount = Decimal   # Entitlement in display units of the token
BaseUnits = int         # Entitlement in the mint's smallest unit
