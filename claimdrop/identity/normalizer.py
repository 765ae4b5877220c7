"""Wallet address normalization.

Every address that reaches the allocation store, whether it comes from the
whitelist file or from a claim request, goes through ``normalize_address``.
The canonical form is obtained by decoding the base58 text into a 32-byte
public key and encoding it again, so only spellings of the same key compare
equal.
"""

import re

from solders.pubkey import Pubkey

from ..core.exceptions import InvalidIdentityError
from ..core.types import CanonicalId

# Bitcoin base58 alphabet: no 0, O, I or l
BASE58_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def normalize_address(raw: object) -> CanonicalId:
    """
    Canonicalize a Solana wallet address.

    Args:
        raw: Address as supplied externally

    Returns:
        Canonical base58 encoding of the public key

    Raises:
        InvalidIdentityError: If the input is empty or not a valid address
    """
    if not isinstance(raw, str):
        raise InvalidIdentityError(raw, "address must be a string")

    candidate = raw.strip()
    if not candidate:
        raise InvalidIdentityError(raw, "address is empty")

    if not BASE58_PATTERN.match(candidate):
        raise InvalidIdentityError(raw, "not a base58 string of 32-44 characters")

    try:
        pubkey = Pubkey.from_string(candidate)
    except ValueError as e:
        raise InvalidIdentityError(raw, f"does not decode to a public key ({e})") from e

    return str(pubkey)
