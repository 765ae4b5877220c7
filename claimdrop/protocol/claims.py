"""Two-phase claim issuance protocol.

Coordinates eligibility check, reservation, transaction construction and
confirmation for one wallet at a time:

    available --request_claim--> reserved --confirm_claim--> consumed
        ^                            |
        +----- rollback / sweep -----+

A transaction handed to a claimant does not prove it was ever submitted, so
the entitlement is only consumed once the claimant confirms. A reservation
whose transaction was handed out is never released by a claimant; only the
TTL sweep or an operator can make it available again.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import timedelta
from typing import Any

from ..core.exceptions import (
    ClaimDropError,
    DataSourceError,
    IssuanceFailedError,
    NotReservedError,
    PersistenceError,
)
from ..core.models import AllocationEntry, ClaimArtifact
from ..core.types import CanonicalId, ClaimState
from ..identity.normalizer import normalize_address
from ..providers.base import TransactionBuilder
from ..storage.allocation_store import AllocationStore

logger = logging.getLogger(__name__)


class ClaimIssuanceProtocol:
    """Issues, confirms and rolls back claims against an allocation store."""

    def __init__(
        self,
        store: AllocationStore,
        builder: TransactionBuilder,
        issuance_timeout: float = 30.0,
        reservation_ttl: float | None = None,
        max_workers: int = 8,
    ):
        """
        Initialize the protocol.

        Args:
            store: Allocation store, owned by the service
            builder: Ledger transaction builder
            issuance_timeout: Upper bound in seconds for one builder call
            reservation_ttl: Seconds after which an unconfirmed reservation is
                released on the next request. None keeps reservations forever.
            max_workers: Threads available for concurrent builder calls
        """
        self.store = store
        self.builder = builder
        self.issuance_timeout = issuance_timeout
        self.reservation_ttl = reservation_ttl
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="claim-builder")

    def close(self) -> None:
        """Stop the builder thread pool without waiting for stuck calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def request_claim(self, raw_identity: object) -> ClaimArtifact:
        """
        Reserve an allocation and build its transfer transaction.

        Raises:
            InvalidIdentityError: Malformed address (store untouched)
            NotEligibleError: Address has no allocation
            AlreadyClaimedError: Allocation is reserved or consumed
            IssuanceFailedError: Build or persistence failed; reservation rolled back
        """
        canonical_id = normalize_address(raw_identity)
        self.sweep_expired()

        try:
            entry = self.store.try_reserve(canonical_id)
        except PersistenceError as e:
            logger.error(f"Could not record reservation for {canonical_id}: {e.message}")
            raise IssuanceFailedError(canonical_id, "claim state could not be saved") from e

        try:
            tx = self._build(entry)
        except ClaimDropError as e:
            logger.error(f"Transaction build failed for {canonical_id}: {e.message}")
            self._rollback(entry)
            raise IssuanceFailedError(canonical_id, "failed to generate transaction") from e

        return ClaimArtifact(canonical_id=canonical_id, tx=tx, amount=entry.amount)

    def confirm_claim(self, raw_identity: object) -> AllocationEntry:
        """
        Mark a reserved allocation as consumed.

        Raises:
            InvalidIdentityError: Malformed address
            NotReservedError: No outstanding claim for this address
            IssuanceFailedError: The confirmation could not be saved
        """
        canonical_id = normalize_address(raw_identity)
        try:
            return self.store.confirm(canonical_id)
        except PersistenceError as e:
            logger.error(f"Could not record confirmation for {canonical_id}: {e.message}")
            raise IssuanceFailedError(canonical_id, "claim state could not be saved") from e

    def sweep_expired(self) -> list[CanonicalId]:
        """Release reservations older than the configured TTL."""
        if self.reservation_ttl is None:
            return []
        try:
            return self.store.release_expired(timedelta(seconds=self.reservation_ttl))
        except PersistenceError as e:
            # Expired entries stay reserved; the next sweep retries
            logger.error(f"Could not record expired reservations: {e.message}")
            return []

    def health(self) -> dict[str, Any]:
        """Entry counts and the service's wallet configuration."""
        counts = self.store.counts()
        return {
            "available": counts[ClaimState.AVAILABLE],
            "reserved": counts[ClaimState.RESERVED],
            "consumed": counts[ClaimState.CONSUMED],
            "payer": self.builder.payer_address,
            "mint": self.builder.mint_address,
        }

    def _build(self, entry: AllocationEntry) -> str:
        """Run the builder with a time bound."""
        future = self._executor.submit(self.builder.build_transfer, entry.canonical_id, entry.amount)
        try:
            return future.result(timeout=self.issuance_timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise DataSourceError(
                self.builder.SOURCE,
                f"transaction build timed out after {self.issuance_timeout}s",
            ) from e
        except ClaimDropError:
            raise
        except Exception as e:
            # Builders may leak library errors; treat them as ledger failures
            raise DataSourceError(self.builder.SOURCE, f"{type(e).__name__}: {e}") from e

    def _rollback(self, entry: AllocationEntry) -> None:
        """Release the reservation made by this request, and no other."""
        canonical_id = entry.canonical_id
        try:
            self.store.release(canonical_id, expected=entry)
        except NotReservedError as e:
            # Released by a sweep or an operator, possibly re-reserved since
            logger.warning(f"Not rolling back {canonical_id}: {e.message}")
        except PersistenceError as e:
            logger.error(
                f"Rollback of {canonical_id} could not be saved, entry stays reserved: {e.message}"
            )
