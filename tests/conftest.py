"""Pytest configuration and fixtures for claim service tests."""

import base64
import threading
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from solders.keypair import Keypair

from claimdrop.core.exceptions import DataSourceError
from claimdrop.protocol.claims import ClaimIssuanceProtocol
from claimdrop.providers.base import TransactionBuilder
from claimdrop.storage.allocation_store import AllocationStore


def make_address(seed: int) -> str:
    """Deterministic valid wallet address."""
    return str(Keypair.from_seed(bytes([seed]) * 32).pubkey())


class FakeBuilder(TransactionBuilder):
    """Transaction builder that never touches the network."""

    SOURCE = "fake"

    def __init__(self, fail: bool = False, delay: float = 0.0, error: Exception | None = None):
        self.fail = fail
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, Decimal]] = []
        self._lock = threading.Lock()

    @property
    def payer_address(self) -> str:
        return make_address(99)

    @property
    def mint_address(self) -> str:
        return make_address(98)

    def build_transfer(self, recipient: str, amount: Decimal) -> str:
        with self._lock:
            self.calls.append((recipient, amount))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise DataSourceError(self.SOURCE, "RPC unavailable", endpoint="getLatestBlockhash")
        return base64.b64encode(f"{recipient}:{amount}".encode()).decode("ascii")

    def is_available(self) -> bool:
        return not self.fail


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def wallet1() -> str:
    return make_address(1)


@pytest.fixture
def wallet2() -> str:
    return make_address(2)


@pytest.fixture
def outsider() -> str:
    """Valid address that is not on the whitelist."""
    return make_address(3)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def write_csv(tmp_path: Path):
    """Write CSV text to a file in tmp_path and return its path."""

    def _write(text: str, name: str = "whitelist.csv") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def whitelist_file(write_csv, wallet1: str, wallet2: str) -> Path:
    """Whitelist with two eligible wallets."""
    return write_csv(
        "wallet_address,claim_amount\n"
        f"{wallet1},10\n"
        f"{wallet2},2.5\n"
    )


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "claim_state.csv"


@pytest.fixture
def store(whitelist_file: Path, state_path: Path, clock: FakeClock) -> AllocationStore:
    return AllocationStore.open(whitelist_file, state_path, clock=clock)


@pytest.fixture
def builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def make_builder():
    """Factory for builders with custom failure behaviour."""
    return FakeBuilder


@pytest.fixture
def protocol(store: AllocationStore, builder: FakeBuilder):
    proto = ClaimIssuanceProtocol(store, builder, issuance_timeout=5.0)
    yield proto
    proto.close()
