"""Tests for the Solana SPL transfer builder."""

import base64
import json
from decimal import Decimal

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction import Transaction
from spl.token.instructions import get_associated_token_address

from claimdrop.core.exceptions import DataSourceError, RateLimitError, TransactionBuildError
from claimdrop.providers.solana_builder import SolanaTransferBuilder, to_base_units

RPC_URL = "http://rpc.test"
BLOCKHASH = str(Hash.new_unique())


def rpc_handler(account_exists: bool = False, error: dict | None = None, status: int = 200):
    """Build an httpx handler answering the JSON-RPC methods the builder uses."""
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method = payload["method"]
        seen.append(method)

        if status != 200:
            return httpx.Response(status, json={})
        if error is not None:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": error})

        if method == "getAccountInfo":
            value = {"data": ["", "base64"], "owner": "x", "lamports": 1} if account_exists else None
            result = {"context": {"slot": 1}, "value": value}
        elif method == "getLatestBlockhash":
            result = {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH, "lastValidBlockHeight": 100}}
        elif method == "getHealth":
            result = "ok"
        else:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32601, "message": "Method not found"}})

        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    handler.seen = seen
    return handler


@pytest.fixture
def airdrop_keypair() -> Keypair:
    return Keypair.from_seed(bytes([42]) * 32)


@pytest.fixture
def mint() -> str:
    return str(Keypair.from_seed(bytes([43]) * 32).pubkey())


def make_builder(keypair: Keypair, mint: str, handler) -> SolanaTransferBuilder:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SolanaTransferBuilder(RPC_URL, keypair, mint, decimals=9, client=client)


class TestToBaseUnits:
    def test_whole_amount(self):
        assert to_base_units(Decimal("10"), 9) == 10_000_000_000

    def test_fractional_amount(self):
        assert to_base_units(Decimal("2.5"), 6) == 2_500_000

    def test_too_precise(self):
        with pytest.raises(ValueError):
            to_base_units(Decimal("0.0000000001"), 9)


class TestSolanaTransferBuilder:
    """Tests for SolanaTransferBuilder."""

    def test_builds_transfer_with_account_creation(self, airdrop_keypair, mint, wallet1):
        handler = rpc_handler(account_exists=False)
        builder = make_builder(airdrop_keypair, mint, handler)

        tx = Transaction.from_bytes(base64.b64decode(builder.build_transfer(wallet1, Decimal("10"))))

        message = tx.message
        assert str(message.account_keys[0]) == wallet1  # recipient pays the fee
        assert str(message.recent_blockhash) == BLOCKHASH
        assert len(message.instructions) == 2

        transfer_data = bytes(message.instructions[-1].data)
        assert transfer_data[0] == 3  # SPL Token Transfer
        assert int.from_bytes(transfer_data[1:9], "little") == 10_000_000_000

        assert handler.seen == ["getAccountInfo", "getLatestBlockhash"]

    def test_skips_account_creation_when_present(self, airdrop_keypair, mint, wallet1):
        builder = make_builder(airdrop_keypair, mint, rpc_handler(account_exists=True))

        tx = Transaction.from_bytes(base64.b64decode(builder.build_transfer(wallet1, Decimal("1"))))

        assert len(tx.message.instructions) == 1

    def test_partially_signed_by_airdrop_wallet(self, airdrop_keypair, mint, wallet1):
        builder = make_builder(airdrop_keypair, mint, rpc_handler())

        tx = Transaction.from_bytes(base64.b64decode(builder.build_transfer(wallet1, Decimal("1"))))

        keys = list(tx.message.account_keys)
        recipient_index = keys.index(tx.message.account_keys[0])
        airdrop_index = keys.index(airdrop_keypair.pubkey())
        assert tx.signatures[recipient_index] == Signature.default()
        assert tx.signatures[airdrop_index] != Signature.default()

    def test_transfers_between_associated_accounts(self, airdrop_keypair, mint, wallet1):
        builder = make_builder(airdrop_keypair, mint, rpc_handler(account_exists=True))

        tx = Transaction.from_bytes(base64.b64decode(builder.build_transfer(wallet1, Decimal("1"))))

        keys = list(tx.message.account_keys)
        source = get_associated_token_address(airdrop_keypair.pubkey(), builder.mint)
        dest = get_associated_token_address(tx.message.account_keys[0], builder.mint)
        accounts = [keys[i] for i in tx.message.instructions[0].accounts]
        assert accounts[:2] == [source, dest]

    def test_rpc_error_raises(self, airdrop_keypair, mint, wallet1):
        handler = rpc_handler(error={"code": -32005, "message": "Node is behind"})
        builder = make_builder(airdrop_keypair, mint, handler)

        with pytest.raises(DataSourceError) as exc_info:
            builder.build_transfer(wallet1, Decimal("1"))
        assert "Node is behind" in exc_info.value.message

    def test_rate_limit(self, airdrop_keypair, mint, wallet1):
        builder = make_builder(airdrop_keypair, mint, rpc_handler(status=429))

        with pytest.raises(RateLimitError):
            builder.build_transfer(wallet1, Decimal("1"))

    def test_http_error(self, airdrop_keypair, mint, wallet1):
        builder = make_builder(airdrop_keypair, mint, rpc_handler(status=503))

        with pytest.raises(DataSourceError) as exc_info:
            builder.build_transfer(wallet1, Decimal("1"))
        assert exc_info.value.status_code == 503

    def test_network_failure(self, airdrop_keypair, mint, wallet1):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        builder = make_builder(airdrop_keypair, mint, handler)
        with pytest.raises(DataSourceError):
            builder.build_transfer(wallet1, Decimal("1"))

    def test_amount_too_precise(self, airdrop_keypair, mint, wallet1):
        handler = rpc_handler()
        builder = make_builder(airdrop_keypair, mint, handler)

        with pytest.raises(TransactionBuildError):
            builder.build_transfer(wallet1, Decimal("0.0000000001"))
        assert handler.seen == []

    def test_is_available(self, airdrop_keypair, mint):
        assert make_builder(airdrop_keypair, mint, rpc_handler()).is_available()
        assert not make_builder(airdrop_keypair, mint, rpc_handler(status=500)).is_available()

    def test_addresses(self, airdrop_keypair, mint):
        builder = make_builder(airdrop_keypair, mint, rpc_handler())
        assert builder.payer_address == str(airdrop_keypair.pubkey())
        assert builder.mint_address == mint
