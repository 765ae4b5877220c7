"""Storage module for allocation state."""

from .allocation_store import AllocationStore, STATE_COLUMNS

__all__ = ["AllocationStore", "STATE_COLUMNS"]
