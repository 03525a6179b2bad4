"""
bazaar-ledger command-line interface.

Usage:
    bazaar-ledger [OPTIONS] COMMAND [ARGS]...
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import click
from rich.console import Console
from rich.table import Table

from .config import LedgerSettings, load_settings
from .engine import MarketplaceLedger
from .exceptions import LedgerError
from .logging_config import setup_logging

console = Console()

# Operations a replay script may invoke, with their accepted arguments
OPERATIONS: Dict[str, tuple[str, ...]] = {
    "set_unit_cost": ("cost",),
    "set_fee_rate": ("rate",),
    "set_refund_rate": ("rate",),
    "set_global_service_limit": ("limit",),
    "set_user_listing_limit": ("limit",),
    "issue_services": ("account", "quantity"),
    "deposit_tokens": ("account", "amount"),
    "add_listing": ("quantity", "unit_cost"),
    "remove_listing": ("quantity",),
    "purchase_service": ("seller", "quantity"),
    "request_refund": ("quantity",),
}

DEMO_SCRIPT: List[Dict[str, Any]] = [
    {"op": "set_unit_cost", "caller": "owner", "cost": 150},
    {"op": "set_fee_rate", "caller": "owner", "rate": 3},
    {"op": "set_refund_rate", "caller": "owner", "rate": 85},
    {"op": "issue_services", "caller": "owner", "account": "seller", "quantity": 10},
    {"op": "deposit_tokens", "caller": "owner", "account": "buyer", "amount": 1000},
    {"op": "add_listing", "caller": "seller", "quantity": 5, "unit_cost": 100},
    {"op": "purchase_service", "caller": "buyer", "seller": "seller", "quantity": 2},
    {"op": "purchase_service", "caller": "buyer", "seller": "seller", "quantity": 4},
]


def apply_step(ledger: MarketplaceLedger, step: Dict[str, Any]) -> None:
    """Invoke one script step against ``ledger``."""
    op = step.get("op")
    if op not in OPERATIONS:
        raise click.ClickException(f"Unknown operation: {op!r}")
    if "caller" not in step:
        raise click.ClickException(f"Step {op!r} is missing 'caller'")

    kwargs = {name: step[name] for name in OPERATIONS[op] if name in step}
    missing = [name for name in OPERATIONS[op] if name not in kwargs]
    if missing:
        raise click.ClickException(f"Step {op!r} is missing {', '.join(missing)}")
    getattr(ledger, op)(step["caller"], **kwargs)


def replay_steps(
    ledger: MarketplaceLedger,
    steps: List[Dict[str, Any]],
    strict: bool = False,
    quiet: bool = False,
) -> int:
    """Replay ``steps`` and return the number of rejected ones."""
    rejected = 0
    for index, step in enumerate(steps, start=1):
        label = f"{index:>3}. {step.get('op')} by {step.get('caller')}"
        try:
            apply_step(ledger, step)
        except LedgerError as e:
            rejected += 1
            if not quiet:
                console.print(f"{label}: [red]{e.code}[/red] {e.message}")
            if strict:
                break
            continue
        if not quiet:
            console.print(f"{label}: [green]ok[/green]")
    return rejected


def render_state(ledger: MarketplaceLedger) -> None:
    snapshot = ledger.snapshot()
    accounts = sorted(
        set(snapshot.service_balances) | set(snapshot.token_balances) | set(snapshot.listings)
    )

    table = Table(title="Ledger State")
    table.add_column("Account", style="cyan")
    table.add_column("Services", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Listed", justify="right")
    table.add_column("Unit Cost", justify="right")

    for account in accounts:
        listing = ledger.listing(account)
        table.add_row(
            account + (" (owner)" if account == snapshot.owner else ""),
            str(ledger.service_balance(account)),
            str(ledger.token_balance(account)),
            str(listing.quantity),
            str(listing.unit_cost) if not listing.is_empty else "-",
        )

    console.print(table)
    console.print(
        f"Global services: [cyan]{snapshot.global_service_count}[/cyan]"
        f" / {snapshot.config['global_service_limit']}"
    )


def _load_script(path: Path) -> List[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {path}: {e}") from e
    if isinstance(data, dict):
        data = data.get("steps", [])
    if not isinstance(data, list):
        raise click.ClickException("Script must be a list of steps or an object with 'steps'")
    return data


@click.group()
@click.version_option(package_name="bazaar-ledger", message="%(prog)s %(version)s")
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Settings .env file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, env_file: str | None, verbose: bool):
    """Bazaar Ledger - service marketplace ledger tools."""
    ctx.ensure_object(dict)
    settings = load_settings(env_file)
    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_json,
    )
    ctx.obj["settings"] = settings


@cli.command()
@click.pass_context
def settings(ctx):
    """Show effective ledger settings."""
    current: LedgerSettings = ctx.obj["settings"]

    table = Table(title="Ledger Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in current.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--strict", is_flag=True, help="Stop and exit non-zero at the first rejected step")
@click.option("--json", "as_json", is_flag=True, help="Print the final state as JSON")
@click.pass_context
def replay(ctx, script: Path, strict: bool, as_json: bool):
    """Replay a JSON script of operations against a fresh ledger."""
    ledger = MarketplaceLedger.from_settings(ctx.obj["settings"])
    steps = _load_script(script)

    rejected = replay_steps(ledger, steps, strict=strict, quiet=as_json)

    if as_json:
        click.echo(json.dumps(ledger.snapshot().to_dict(), indent=2, sort_keys=True))
    else:
        render_state(ledger)

    if strict and rejected:
        sys.exit(1)


@cli.command()
@click.pass_context
def demo(ctx):
    """Walk through a listing, a purchase and an over-sized purchase."""
    ledger = MarketplaceLedger.from_settings(ctx.obj["settings"])
    owner = ledger.owner
    steps = [{**step, "caller": owner} if step["caller"] == "owner" else step for step in DEMO_SCRIPT]

    console.print("\n[bold blue]Bazaar Ledger Demo[/bold blue]\n")
    replay_steps(ledger, steps)
    console.print()
    render_state(ledger)


if __name__ == "__main__":
    cli()
