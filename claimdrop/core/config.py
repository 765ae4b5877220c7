"""Configuration management for the claim service.

Loads configuration from an optional YAML file, a .env file and environment
variables. Environment variables take precedence over the YAML file.
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair

from .exceptions import ConfigurationError

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"

# env var -> ServiceConfig field
ENV_KEYS = {
    "SOLANA_RPC_URL": "rpc_url",
    "AIRDROP_WALLET_PRIVATE_KEY": "wallet_secret",
    "AIRDROP_KEYPAIR_PATH": "keypair_path",
    "TOKEN_MINT_ADDRESS": "mint_address",
    "TOKEN_DECIMALS": "token_decimals",
    "WHITELIST_PATH": "whitelist_path",
    "CLAIM_STATE_PATH": "state_path",
    "HOST": "host",
    "PORT": "port",
    "ISSUANCE_TIMEOUT_SECONDS": "issuance_timeout",
    "RPC_TIMEOUT_SECONDS": "rpc_timeout",
    "RESERVATION_TTL_SECONDS": "reservation_ttl",
    "CORS_ORIGINS": "cors_origins",
}


@dataclass
class ServiceConfig:
    """Runtime configuration for the claim service."""

    # Ledger access
    rpc_url: str = DEFAULT_RPC_URL
    rpc_timeout: float = 10.0

    # Airdrop wallet: JSON byte array secret, or a keypair file containing one
    wallet_secret: Optional[str] = None
    keypair_path: Path = Path("airdrop-keypair.json")

    # Token being distributed
    mint_address: Optional[str] = None
    token_decimals: int = 9

    # Allocation files
    whitelist_path: Path = Path("whitelist.csv")
    state_path: Path = Path("claim_state.csv")

    # HTTP service
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Protocol bounds
    issuance_timeout: float = 30.0
    reservation_ttl: Optional[float] = None  # seconds; None disables expiry

    def __post_init__(self) -> None:
        self.keypair_path = Path(self.keypair_path)
        self.whitelist_path = Path(self.whitelist_path)
        self.state_path = Path(self.state_path)
        if isinstance(self.cors_origins, str):
            self.cors_origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        try:
            self.token_decimals = int(self.token_decimals)
            self.port = int(self.port)
            self.rpc_timeout = float(self.rpc_timeout)
            self.issuance_timeout = float(self.issuance_timeout)
            if self.reservation_ttl in ("", None):
                self.reservation_ttl = None
            else:
                self.reservation_ttl = float(self.reservation_ttl)
        except (TypeError, ValueError) as e:
            raise ConfigurationError("numeric", str(e)) from e

        if not 0 <= self.token_decimals <= 18:
            raise ConfigurationError("token_decimals", f"out of range: {self.token_decimals}")
        if self.issuance_timeout <= 0:
            raise ConfigurationError("issuance_timeout", "must be positive")
        # A reservation must outlive the build it guards
        if self.reservation_ttl is not None and self.reservation_ttl <= self.issuance_timeout:
            raise ConfigurationError(
                "reservation_ttl",
                f"must be longer than issuance_timeout ({self.issuance_timeout}s)",
            )

    @classmethod
    def from_env(cls, base: dict[str, Any] | None = None) -> "ServiceConfig":
        """Build configuration from environment variables over ``base`` values."""
        values = dict(base or {})
        for env_key, attr in ENV_KEYS.items():
            value = os.getenv(env_key)
            if value is not None and value != "":
                values[attr] = value
        return cls(**values)

    @classmethod
    def load(
        cls,
        env_file: Optional[Path] = None,
        config_file: Optional[Path] = None,
    ) -> "ServiceConfig":
        """
        Load configuration from YAML, .env file and environment variables.

        Args:
            env_file: Optional path to .env file. If not provided,
                      looks for .env in the working directory.
            config_file: Optional YAML file with ServiceConfig field names as keys.

        Returns:
            ServiceConfig instance with loaded values
        """
        if env_file:
            load_dotenv(env_file)
        else:
            env_path = Path.cwd() / ".env"
            if env_path.exists():
                load_dotenv(env_path)

        base: dict[str, Any] = {}
        if config_file:
            base = cls._read_yaml(Path(config_file))

        return cls.from_env(base)

    @staticmethod
    def _read_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            raise ConfigurationError("config_file", f"not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError("config_file", "top level must be a mapping")

        known = {f.name for f in fields(ServiceConfig)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError("config_file", f"unknown keys: {', '.join(sorted(unknown))}")
        return data

    def load_keypair(self) -> Keypair:
        """Resolve the airdrop wallet from the secret env var or the keypair file."""
        if self.wallet_secret:
            return keypair_from_json(self.wallet_secret, "AIRDROP_WALLET_PRIVATE_KEY")
        if self.keypair_path.exists():
            return keypair_from_json(
                self.keypair_path.read_text(encoding="utf-8"), str(self.keypair_path)
            )
        raise ConfigurationError(
            "AIRDROP_WALLET_PRIVATE_KEY",
            f"no wallet secret set and keypair file {self.keypair_path} not found",
        )

    def require_mint(self) -> str:
        """Return the configured mint address or fail."""
        if not self.mint_address:
            raise ConfigurationError("TOKEN_MINT_ADDRESS", "token mint address is not set")
        return self.mint_address


def keypair_from_json(raw: str, source: str) -> Keypair:
    """Decode a Solana CLI style keypair (JSON array of 64 bytes)."""
    try:
        secret = json.loads(raw)
        return Keypair.from_bytes(bytes(secret))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(source, f"invalid keypair: {e}") from e
