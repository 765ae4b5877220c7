"""Solana SPL token transfer builder.

Builds the claim transaction the same way for every claimant:
- optional create-associated-token-account instruction for the recipient
- SPL transfer from the airdrop wallet's token account to the recipient's
- recipient pays the fee, airdrop wallet partially signs

The recipient signs and submits the transaction out of band.
"""

import base64
import itertools
import logging
import time
from decimal import Decimal
from typing import Any

import httpx
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    create_associated_token_account,
    get_associated_token_address,
    transfer,
)
from spl.token.models import TransferParams

from ..core.exceptions import DataSourceError, RateLimitError, TransactionBuildError
from ..core.types import BaseUnits
from .base import TransactionBuilder

logger = logging.getLogger(__name__)


def to_base_units(amount: Decimal, decimals: int) -> BaseUnits:
    """
    Convert a display amount to the mint's smallest unit.

    Raises:
        ValueError: If the amount has more precision than the mint allows
    """
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return int(scaled)


class SolanaTransferBuilder(TransactionBuilder):
    """Builds partially signed SPL transfers via Solana JSON-RPC."""

    SOURCE = "solana"

    def __init__(
        self,
        rpc_url: str,
        keypair: Keypair,
        mint: str,
        decimals: int = 9,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize the builder.

        Args:
            rpc_url: Solana JSON-RPC endpoint
            keypair: Airdrop wallet holding the tokens
            mint: Token mint address
            decimals: Mint decimals
            timeout: Per-request RPC timeout in seconds
            client: Optional shared httpx client (mostly for tests)
        """
        self.rpc_url = rpc_url
        self.keypair = keypair
        self.mint = Pubkey.from_string(mint)
        self.decimals = decimals
        self.timeout = timeout
        self._client = client
        self._request_ids = itertools.count(1)

    @property
    def payer_address(self) -> str:
        return str(self.keypair.pubkey())

    @property
    def mint_address(self) -> str:
        return str(self.mint)

    def is_available(self) -> bool:
        """Check node health via ``getHealth``."""
        try:
            return self._rpc("getHealth") == "ok"
        except DataSourceError as e:
            logger.warning(f"[{self.SOURCE}] health check failed: {e.message}")
            return False

    def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params or [],
        }
        start_time = time.time()

        try:
            if self._client is not None:
                response = self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            raise DataSourceError(self.SOURCE, f"timeout after {self.timeout}s", endpoint=method) from e
        except httpx.HTTPError as e:
            raise DataSourceError(self.SOURCE, f"request failed: {e}", endpoint=method) from e

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"[{self.SOURCE}] {method} -> HTTP {response.status_code} in {duration_ms}ms")

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                self.SOURCE,
                retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                endpoint=method,
            )

        try:
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise DataSourceError(
                self.SOURCE,
                f"HTTP {e.response.status_code}",
                endpoint=method,
                status_code=e.response.status_code,
            ) from e
        except ValueError as e:
            raise DataSourceError(self.SOURCE, "invalid JSON response", endpoint=method) from e

        if "error" in body:
            error = body["error"] or {}
            raise DataSourceError(
                self.SOURCE,
                f"RPC error {error.get('code')}: {error.get('message')}",
                endpoint=method,
            )
        if "result" not in body:
            raise DataSourceError(self.SOURCE, "response has no result", endpoint=method)

        return body["result"]

    def get_latest_blockhash(self) -> Hash:
        result = self._rpc("getLatestBlockhash", [{"commitment": "finalized"}])
        try:
            return Hash.from_string(result["value"]["blockhash"])
        except (KeyError, TypeError, ValueError) as e:
            raise DataSourceError(self.SOURCE, f"malformed blockhash: {e}", endpoint="getLatestBlockhash") from e

    def account_exists(self, address: Pubkey) -> bool:
        result = self._rpc(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": "confirmed"}],
        )
        return bool(result and result.get("value"))

    def build_instructions(self, recipient: Pubkey, amount: BaseUnits) -> list[Instruction]:
        """Instructions for one claim: optional ATA creation, then the transfer."""
        owner = self.keypair.pubkey()
        source_ata = get_associated_token_address(owner, self.mint)
        dest_ata = get_associated_token_address(recipient, self.mint)

        instructions: list[Instruction] = []
        if not self.account_exists(dest_ata):
            logger.debug(f"[{self.SOURCE}] creating token account {dest_ata} for {recipient}")
            instructions.append(create_associated_token_account(recipient, recipient, self.mint))

        instructions.append(
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=source_ata,
                    dest=dest_ata,
                    owner=owner,
                    amount=amount,
                )
            )
        )
        return instructions

    def build_transfer(self, recipient: str, amount: Decimal) -> str:
        """Build, partially sign and serialize the claim transaction."""
        try:
            recipient_key = Pubkey.from_string(recipient)
            base_units = to_base_units(amount, self.decimals)
        except ValueError as e:
            raise TransactionBuildError(self.SOURCE, str(e), endpoint="build_transfer") from e

        instructions = self.build_instructions(recipient_key, base_units)
        blockhash = self.get_latest_blockhash()

        message = Message.new_with_blockhash(instructions, recipient_key, blockhash)
        tx = Transaction.new_unsigned(message)
        try:
            tx.partial_sign([self.keypair], blockhash)
        except ValueError as e:
            raise TransactionBuildError(self.SOURCE, f"signing failed: {e}", endpoint="build_transfer") from e

        logger.info(f"[{self.SOURCE}] built transfer of {amount} ({base_units} base units) to {recipient}")
        return base64.b64encode(bytes(tx)).decode("ascii")
