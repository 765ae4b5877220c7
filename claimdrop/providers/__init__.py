"""Transaction builders for the supported ledgers."""

from .base import TransactionBuilder
from .solana_builder import SolanaTransferBuilder

__all__ = ["TransactionBuilder", "SolanaTransferBuilder"]
