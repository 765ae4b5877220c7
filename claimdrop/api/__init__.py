"""HTTP API for the claim service."""

from .app import create_app

__all__ = ["create_app"]
