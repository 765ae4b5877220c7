"""Core module - data models, types, exceptions and configuration."""

from .models import AllocationEntry, ClaimArtifact
from .types import ClaimState
from .exceptions import (
    ClaimDropError,
    InvalidIdentityError,
    NotEligibleError,
    AlreadyClaimedError,
    NotReservedError,
    IssuanceFailedError,
    PersistenceError,
    DataSourceError,
    RateLimitError,
    TransactionBuildError,
    ConfigurationError,
)

__all__ = [
    # Models
    "AllocationEntry",
    "ClaimArtifact",
    # Types
    "ClaimState",
    # Exceptions
    "ClaimDropError",
    "InvalidIdentityError",
    "NotEligibleError",
    "AlreadyClaimedError",
    "NotReservedError",
    "IssuanceFailedError",
    "PersistenceError",
    "DataSourceError",
    "RateLimitError",
    "TransactionBuildError",
    "ConfigurationError",
]
