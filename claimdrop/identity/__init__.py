"""Identity module - wallet address normalization."""

from .normalizer import normalize_address

__all__ = ["normalize_address"]
