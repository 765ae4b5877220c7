"""
CSV-backed allocation store.

Holds every whitelisted wallet's entitlement in memory, keyed by canonical
address, and writes the full entry set (including consumed entries) to a
state file after every state change. The state file uses the whitelist
column layout plus ``state`` and ``reserved_at`` columns, so it can be read
back with ``AllocationStore.load`` after a restart.

Usage:
    store = AllocationStore.open("whitelist.csv", "claim_state.csv")

    entry = store.try_reserve(address)   # available -> reserved
    store.confirm(address)               # reserved -> consumed
    store.release(address)               # reserved -> available
"""

import csv
import io
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from ..core.exceptions import (
    AlreadyClaimedError,
    InvalidIdentityError,
    NotEligibleError,
    NotReservedError,
    PersistenceError,
)
from ..core.models import AllocationEntry
from ..core.types import CanonicalId, ClaimState
from ..identity.normalizer import normalize_address

logger = logging.getLogger(__name__)

STATE_COLUMNS = ["wallet_address", "claim_amount", "state", "reserved_at"]

# Accepted header spellings in import files
ADDRESS_COLUMNS = ("wallet_address", "address", "wallet")
AMOUNT_COLUMNS = ("claim_amount", "amount")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _pick(row: dict[str, str], candidates: tuple[str, ...]) -> str | None:
    for name in candidates:
        if name in row and row[name] is not None:
            return row[name]
    return None


def _parse_amount(raw: str | None) -> Decimal | None:
    """Parse a positive finite amount, or return None."""
    if raw is None:
        return None
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def _parse_timestamp(raw: str | None) -> datetime | None:
    if not raw or not raw.strip():
        return None
    value = datetime.fromisoformat(raw.strip())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_row(row: dict[str, str]) -> AllocationEntry:
    """
    Build an entry from one CSV row.

    Raises:
        InvalidIdentityError: If the address does not normalize
        ValueError: If the amount, state or timestamp is malformed
    """
    raw_address = _pick(row, ADDRESS_COLUMNS)
    canonical_id = normalize_address(raw_address)

    amount = _parse_amount(_pick(row, AMOUNT_COLUMNS))
    if amount is None:
        raise ValueError(f"amount is not a positive number: {_pick(row, AMOUNT_COLUMNS)!r}")

    state_raw = (row.get("state") or "").strip().lower()
    state = ClaimState(state_raw) if state_raw else ClaimState.AVAILABLE

    reserved_at = None
    if state == ClaimState.RESERVED:
        # A reservation restored without a timestamp is treated as made at load time
        reserved_at = _parse_timestamp(row.get("reserved_at")) or utc_now()

    return AllocationEntry(
        canonical_id=canonical_id,
        original_id=raw_address.strip(),
        amount=amount,
        state=state,
        reserved_at=reserved_at,
    )


class AllocationStore:
    """
    Thread-safe owner of all allocation entries.

    Every mutation and the persist that records it happen under one lock, so
    ``try_reserve`` behaves as a compare-and-swap across threads and the state
    file never reflects a half-applied change. If the persist fails, the
    in-memory change is undone before the error propagates.
    """

    def __init__(
        self,
        entries: Iterable[AllocationEntry] = (),
        state_path: Path | str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the store.

        Args:
            entries: Initial entries; later duplicates replace earlier ones
            state_path: File the store persists to. None keeps the store in memory.
            clock: Returns the current time (UTC aware)
        """
        self.state_path = Path(state_path) if state_path else None
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[CanonicalId, AllocationEntry] = {}
        for entry in entries:
            self._entries[entry.canonical_id] = entry

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        source: Path | str,
        state_path: Path | str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AllocationStore":
        """
        Load entries from a whitelist or state CSV file.

        Bad rows are logged and skipped. Duplicate addresses resolve
        last-write-wins.

        Args:
            source: CSV file to read
            state_path: Where the resulting store persists to
            clock: Time source for the store

        Raises:
            PersistenceError: If the file cannot be read
        """
        path = Path(source)
        try:
            with open(path, "r", encoding="utf-8-sig", newline="") as f:
                text = f.read()
        except OSError as e:
            raise PersistenceError(str(path), f"cannot read allocation source: {e}") from e

        entries: dict[CanonicalId, AllocationEntry] = {}
        skipped = 0
        reader = csv.DictReader(io.StringIO(text))
        if reader.fieldnames:
            reader.fieldnames = [name.strip().lower() for name in reader.fieldnames]

        for line_no, row in enumerate(reader, start=2):
            try:
                entry = parse_row(row)
            except InvalidIdentityError as e:
                logger.warning(f"{path}:{line_no}: skipping row, {e.message}")
                skipped += 1
                continue
            except (ValueError, TypeError) as e:
                logger.warning(f"{path}:{line_no}: skipping row, {e}")
                skipped += 1
                continue

            if entry.canonical_id in entries:
                logger.warning(
                    f"{path}:{line_no}: duplicate address {entry.canonical_id}, "
                    f"keeping the later row"
                )
                # Re-insert so the surviving row takes the later position
                del entries[entry.canonical_id]
            entries[entry.canonical_id] = entry

        logger.info(f"Loaded {len(entries)} allocations from {path} ({skipped} rows skipped)")
        return cls(entries.values(), state_path=state_path, clock=clock)

    @classmethod
    def open(
        cls,
        import_path: Path | str,
        state_path: Path | str,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AllocationStore":
        """
        Startup helper: resume from the state file, or import and persist.

        The whitelist is only read when no state file exists yet, so consumed
        claims are never resurrected by re-importing it.
        """
        state_path = Path(state_path)
        if state_path.exists():
            logger.info(f"Resuming claim state from {state_path}")
            return cls.load(state_path, state_path=state_path, clock=clock)

        logger.info(f"No claim state at {state_path}, importing {import_path}")
        store = cls.load(import_path, state_path=state_path, clock=clock)
        store.persist()
        return store

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, canonical_id: CanonicalId) -> Optional[AllocationEntry]:
        """Return the entry for ``canonical_id`` or None."""
        with self._lock:
            return self._entries.get(canonical_id)

    def entries(self) -> list[AllocationEntry]:
        """Snapshot of all entries in insertion order."""
        with self._lock:
            return list(self._entries.values())

    def counts(self) -> dict[ClaimState, int]:
        """Number of entries per state."""
        counts = {state: 0 for state in ClaimState}
        with self._lock:
            for entry in self._entries.values():
                counts[entry.state] += 1
        return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, canonical_id: object) -> bool:
        with self._lock:
            return canonical_id in self._entries

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def try_reserve(self, canonical_id: CanonicalId) -> AllocationEntry:
        """
        Atomically move an entry from available to reserved.

        Raises:
            NotEligibleError: No allocation for this address
            AlreadyClaimedError: Entry is reserved or consumed
            PersistenceError: State file write failed (change rolled back)
        """
        with self._lock:
            entry = self._entries.get(canonical_id)
            if entry is None:
                raise NotEligibleError(canonical_id)
            if not entry.is_available:
                raise AlreadyClaimedError(canonical_id, entry.state.value)

            updated = entry.transition(ClaimState.RESERVED, at=self._clock())
            self._commit({canonical_id: (entry, updated)})
            logger.info(f"Reserved {canonical_id} ({entry.amount})")
            return updated

    def confirm(self, canonical_id: CanonicalId) -> AllocationEntry:
        """
        Atomically move an entry from reserved to consumed.

        Raises:
            NotReservedError: Entry is absent or not reserved
            PersistenceError: State file write failed (change rolled back)
        """
        with self._lock:
            entry = self._require_reserved(canonical_id)
            updated = entry.transition(ClaimState.CONSUMED)
            self._commit({canonical_id: (entry, updated)})
            logger.info(f"Consumed {canonical_id} ({entry.amount})")
            return updated

    def release(
        self,
        canonical_id: CanonicalId,
        expected: AllocationEntry | None = None,
    ) -> AllocationEntry:
        """
        Atomically move an entry from reserved back to available.

        Args:
            canonical_id: Wallet to release
            expected: The entry returned by the caller's own ``try_reserve``.
                When given, the release only applies if that reservation is
                still the current one.

        Raises:
            NotReservedError: Entry is absent, not reserved, or reserved by
                someone other than ``expected``
            PersistenceError: State file write failed (change rolled back)
        """
        with self._lock:
            entry = self._require_reserved(canonical_id)
            if expected is not None and entry is not expected:
                raise NotReservedError(canonical_id, "reserved by another request")
            updated = entry.transition(ClaimState.AVAILABLE)
            self._commit({canonical_id: (entry, updated)})
            logger.info(f"Released {canonical_id}")
            return updated

    def release_expired(
        self,
        max_age: timedelta,
        now: datetime | None = None,
    ) -> list[CanonicalId]:
        """
        Release every reservation older than ``max_age``.

        All releases are persisted together.

        Returns:
            Canonical ids that were released
        """
        with self._lock:
            now = now or self._clock()
            cutoff = now - max_age
            changes = {
                cid: (entry, entry.transition(ClaimState.AVAILABLE))
                for cid, entry in self._entries.items()
                if entry.is_reserved and entry.reserved_at is not None and entry.reserved_at <= cutoff
            }
            if not changes:
                return []
            self._commit(changes)
            logger.info(f"Released {len(changes)} expired reservations (older than {max_age})")
            return list(changes)

    def _require_reserved(self, canonical_id: CanonicalId) -> AllocationEntry:
        entry = self._entries.get(canonical_id)
        if entry is None:
            raise NotReservedError(canonical_id)
        if not entry.is_reserved:
            raise NotReservedError(canonical_id, entry.state.value)
        return entry

    def _commit(
        self,
        changes: dict[CanonicalId, tuple[AllocationEntry, AllocationEntry]],
    ) -> None:
        """Apply changes and persist; restore the previous entries on failure."""
        for cid, (_, updated) in changes.items():
            self._entries[cid] = updated
        try:
            self.persist()
        except PersistenceError:
            for cid, (previous, _) in changes.items():
                self._entries[cid] = previous
            raise

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def dumps(self) -> str:
        """Serialize all entries to state CSV text."""
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(STATE_COLUMNS)
        with self._lock:
            for entry in self._entries.values():
                writer.writerow([
                    entry.original_id,
                    format(entry.amount, "f"),
                    entry.state.value,
                    entry.reserved_at.isoformat() if entry.reserved_at else "",
                ])
        return output.getvalue()

    def persist(self) -> None:
        """
        Atomically write the full entry set to the state file.

        Writes to a temporary file in the same directory and renames it over
        the state file.

        Raises:
            PersistenceError: If the write fails
        """
        if self.state_path is None:
            return

        with self._lock:
            data = self.dumps()
            directory = self.state_path.parent
            tmp_name = None
            try:
                directory.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    newline="",
                    dir=directory,
                    prefix=f".{self.state_path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as f:
                    tmp_name = f.name
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.state_path)
                tmp_name = None
            except OSError as e:
                logger.error(f"Failed to persist claim state to {self.state_path}: {e}")
                raise PersistenceError(str(self.state_path), str(e)) from e
            finally:
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
