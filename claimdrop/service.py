"""Wires configuration, store, builder and protocol into a running service."""

import logging

from fastapi import FastAPI

from .api.app import create_app
from .core.config import ServiceConfig
from .protocol.claims import ClaimIssuanceProtocol
from .providers.solana_builder import SolanaTransferBuilder
from .storage.allocation_store import AllocationStore

logger = logging.getLogger(__name__)


def build_protocol(config: ServiceConfig) -> ClaimIssuanceProtocol:
    """
    Load the allocation store and connect it to the Solana builder.

    Raises:
        ConfigurationError: Wallet or mint not configured
        PersistenceError: Whitelist or state file unreadable
    """
    keypair = config.load_keypair()
    builder = SolanaTransferBuilder(
        rpc_url=config.rpc_url,
        keypair=keypair,
        mint=config.require_mint(),
        decimals=config.token_decimals,
        timeout=config.rpc_timeout,
    )
    store = AllocationStore.open(config.whitelist_path, config.state_path)

    logger.info(
        f"Airdrop wallet {builder.payer_address}, mint {builder.mint_address}, "
        f"{len(store)} allocations"
    )
    return ClaimIssuanceProtocol(
        store,
        builder,
        issuance_timeout=config.issuance_timeout,
        reservation_ttl=config.reservation_ttl,
    )


def build_app(config: ServiceConfig) -> FastAPI:
    """Create the HTTP app for ``config``."""
    protocol = build_protocol(config)
    return create_app(protocol, cors_origins=config.cors_origins)
