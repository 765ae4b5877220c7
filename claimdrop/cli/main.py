"""CLI entry point for the claim service.

Usage:
    claimdrop serve --port 5000
    claimdrop status --list
    claimdrop sweep --max-age 3600
    claimdrop release <WALLET_ADDRESS>
    claimdrop pubkey airdrop-keypair.json

The maintenance commands (status, sweep, release) operate on the state file
directly and should be run while the service is stopped.
"""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..core.config import ServiceConfig, keypair_from_json
from ..core.exceptions import ClaimDropError
from ..core.types import ClaimState
from ..identity.normalizer import normalize_address
from ..storage.allocation_store import AllocationStore

app = typer.Typer(
    name="claimdrop",
    help="Single-use airdrop claim issuance service",
    add_completion=False,
)

console = Console()

STATE_STYLES = {
    ClaimState.AVAILABLE: "green",
    ClaimState.RESERVED: "yellow",
    ClaimState.CONSUMED: "dim",
}

ConfigOption = typer.Option(None, "--config", help="YAML settings file")
EnvFileOption = typer.Option(None, "--env-file", help="Path to .env file")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
    )


def load_config(config: Optional[Path], env_file: Optional[Path]) -> ServiceConfig:
    try:
        return ServiceConfig.load(env_file=env_file, config_file=config)
    except ClaimDropError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)


def open_state(cfg: ServiceConfig) -> AllocationStore:
    """Open the persisted state for offline maintenance."""
    try:
        return AllocationStore.open(cfg.whitelist_path, cfg.state_path)
    except ClaimDropError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)


def read_state(cfg: ServiceConfig) -> AllocationStore:
    """Load claim state without writing anything.

    Falls back to the whitelist when the service has not created a state
    file yet.
    """
    source = cfg.state_path
    if not source.exists():
        console.print(f"[yellow]No claim state at {source}, showing {cfg.whitelist_path}[/]")
        source = cfg.whitelist_path
    try:
        return AllocationStore.load(source)
    except ClaimDropError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from config)"),
    config: Optional[Path] = ConfigOption,
    env_file: Optional[Path] = EnvFileOption,
    verbose: bool = VerboseOption,
) -> None:
    """Start the HTTP claim service."""
    import uvicorn

    from ..service import build_app

    setup_logging(verbose)
    cfg = load_config(config, env_file)

    try:
        http_app = build_app(cfg)
    except ClaimDropError as e:
        console.print(f"[red]Startup failed: {e.message}[/]")
        raise typer.Exit(1)

    bind_host = host or cfg.host
    bind_port = port or cfg.port
    console.print(f"[bold]Claim service running on {bind_host}:{bind_port}[/]")
    uvicorn.run(http_app, host=bind_host, port=bind_port, log_config=None)


@app.command()
def status(
    list_entries: bool = typer.Option(False, "--list", "-l", help="List every allocation"),
    config: Optional[Path] = ConfigOption,
    env_file: Optional[Path] = EnvFileOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show how many allocations are available, reserved and consumed."""
    setup_logging(verbose)
    store = read_state(load_config(config, env_file))

    counts = store.counts()
    summary = Table(title="Claim State")
    summary.add_column("State")
    summary.add_column("Entries", justify="right")
    for state in ClaimState:
        summary.add_row(f"[{STATE_STYLES[state]}]{state.display_name}[/]", str(counts[state]))
    summary.add_row("[bold]Total[/]", str(len(store)))
    console.print(summary)

    if list_entries:
        table = Table(title="Allocations")
        table.add_column("Wallet")
        table.add_column("Amount", justify="right")
        table.add_column("State")
        table.add_column("Reserved At")
        for entry in store.entries():
            table.add_row(
                entry.original_id,
                format(entry.amount, "f"),
                f"[{STATE_STYLES[entry.state]}]{entry.state.value}[/]",
                entry.reserved_at.isoformat() if entry.reserved_at else "",
            )
        console.print(table)


@app.command()
def sweep(
    max_age: float = typer.Option(..., "--max-age", help="Release reservations older than this many seconds"),
    config: Optional[Path] = ConfigOption,
    env_file: Optional[Path] = EnvFileOption,
    verbose: bool = VerboseOption,
) -> None:
    """Release reservations that were never confirmed."""
    setup_logging(verbose)
    store = open_state(load_config(config, env_file))

    try:
        released = store.release_expired(timedelta(seconds=max_age))
    except ClaimDropError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)

    for canonical_id in released:
        console.print(f"  released {canonical_id}")
    console.print(f"[bold]Released {len(released)} reservations[/]")


@app.command()
def release(
    address: str = typer.Argument(..., help="Wallet address with an outstanding claim"),
    config: Optional[Path] = ConfigOption,
    env_file: Optional[Path] = EnvFileOption,
    verbose: bool = VerboseOption,
) -> None:
    """Cancel one outstanding claim so the wallet can claim again."""
    setup_logging(verbose)
    store = open_state(load_config(config, env_file))

    try:
        entry = store.release(normalize_address(address))
    except ClaimDropError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)

    console.print(f"[green]{entry.canonical_id} is available again ({entry.amount})[/]")


@app.command()
def pubkey(
    keypair_file: Path = typer.Argument(
        Path("airdrop-keypair.json"),
        help="Solana CLI keypair file (JSON byte array)",
    ),
) -> None:
    """Print the public key of the airdrop wallet."""
    if not keypair_file.exists():
        console.print(f"[red]File not found: {keypair_file}[/]")
        raise typer.Exit(1)

    try:
        keypair = keypair_from_json(keypair_file.read_text(encoding="utf-8"), str(keypair_file))
    except ClaimDropError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)

    console.print(f"Public Key: {keypair.pubkey()}")


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__
    console.print(f"claimdrop v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
