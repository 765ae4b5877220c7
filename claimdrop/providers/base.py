"""Base class for transaction builders."""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal

logger = logging.getLogger(__name__)


class TransactionBuilder(ABC):
    """
    Builds the transfer transaction handed to a claimant.

    Implementations talk to a specific ledger. The claim protocol only relies
    on this interface, so tests and alternative chains plug in here.
    """

    # Subclasses set a short name used in logs and errors
    SOURCE: str = "unknown"

    @property
    @abstractmethod
    def payer_address(self) -> str:
        """Address of the wallet the airdrop is paid from."""
        pass

    @property
    def mint_address(self) -> str | None:
        """Token being distributed, if the ledger has that notion."""
        return None

    @abstractmethod
    def build_transfer(self, recipient: str, amount: Decimal) -> str:
        """
        Build a serialized transfer of ``amount`` to ``recipient``.

        Args:
            recipient: Canonical recipient address
            amount: Amount in display units of the token

        Returns:
            base64 encoded transaction

        Raises:
            DataSourceError: If the ledger cannot be reached or the build fails
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the ledger node is reachable and healthy."""
        pass
