#!/usr/bin/env python3
"""
Nite CLI - offline permit signing and address tooling

Commands:
- sign-permit: sign a Permit for a single nite
- sign-permit-for-all: sign a PermitForAll operator approval
- domain-separator: print a ledger's EIP-712 domain separator
- property-address: compute the deterministic ledger address for (host, slot)

Private keys are read from --private-key or the NITE_PRIVATE_KEY
environment variable and never leave the process.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any

import click
from eth_account import Account
from rich import box
from rich.console import Console
from rich.table import Table

from nite.core import config
from nite.core.addresses import normalize
from nite.core.contracts.factory import compute_property_address
from nite.core.logging_config import get_logger
from nite.core.typed_signing import (
    PERMIT_FOR_ALL_TYPES,
    PERMIT_TYPES,
    TypedDataDomain,
    hash_domain,
    hash_typed_data,
    sign_typed_data,
)

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _address(ctx, param, value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return normalize(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


def _domain(ledger: str, chain_id: int, name: str, version: str) -> TypedDataDomain:
    return TypedDataDomain(name=name, version=version, chain_id=chain_id, verifying_contract=ledger)


def _render(title: str, rows: dict[str, Any], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    table = Table(title=title, show_header=False, box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in rows.items():
        table.add_row(key, str(value))
    console.print(table)


def _default_deadline(deadline: int | None, ttl: int) -> int:
    return deadline if deadline is not None else int(time.time()) + ttl


domain_options = [
    click.option("--ledger", required=True, callback=_address, help="Ledger (verifying contract) address"),
    click.option("--chain-id", default=config.CHAIN_ID, show_default=True, type=int, help="EIP-155 chain id"),
    click.option("--domain-name", default=config.PERMIT_DOMAIN_NAME, show_default=True, help="EIP-712 domain name"),
    click.option("--domain-version", default=config.PERMIT_DOMAIN_VERSION, show_default=True, help="EIP-712 domain version"),
]

signing_options = [
    click.option("--private-key", envvar="NITE_PRIVATE_KEY", required=True, help="Signer private key (hex)"),
    click.option("--nonce", required=True, type=int, help="Signer's current ledger nonce"),
    click.option("--deadline", type=int, default=None, help="Expiry timestamp (default: now + --ttl)"),
    click.option("--ttl", type=int, default=3600, show_default=True, help="Seconds until expiry when --deadline is omitted"),
    click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON"),
]


def _apply(options):
    def decorator(func):
        for option in reversed(options):
            func = option(func)
        return func
    return decorator


@click.group()
@click.option("--log-level", default=config.LOG_LEVEL, show_default=True, help="Logging level")
def cli(log_level: str):
    """Nite ledger tooling."""
    logging.getLogger("nite").setLevel(log_level.upper())


@cli.command("sign-permit")
@_apply(domain_options)
@click.option("--spender", required=True, callback=_address, help="Account to approve")
@click.option("--token-id", required=True, type=int, help="Nite token id")
@_apply(signing_options)
def sign_permit(
    ledger: str,
    chain_id: int,
    domain_name: str,
    domain_version: str,
    spender: str,
    token_id: int,
    private_key: str,
    nonce: int,
    deadline: int | None,
    ttl: int,
    as_json: bool,
):
    """Sign a Permit approving SPENDER for one nite."""
    try:
        domain = _domain(ledger, chain_id, domain_name, domain_version)
        message = {
            "spender": spender,
            "tokenId": token_id,
            "nonce": nonce,
            "deadline": _default_deadline(deadline, ttl),
        }
        signature = sign_typed_data(private_key, domain, "Permit", PERMIT_TYPES, message)
        digest = hash_typed_data(domain, "Permit", PERMIT_TYPES, message)
        rows = {
            "signer": Account.from_key(private_key).address,
            **message,
            "digest": "0x" + digest.hex(),
            "signature": "0x" + signature.hex(),
        }
    except (ValueError, TypeError) as exc:
        _handle_cli_error(exc)
        return
    _render("Permit", rows, as_json)


@cli.command("sign-permit-for-all")
@_apply(domain_options)
@click.option("--operator", required=True, callback=_address, help="Operator account")
@click.option("--approved/--revoked", default=True, help="Grant or revoke operator rights")
@_apply(signing_options)
def sign_permit_for_all(
    ledger: str,
    chain_id: int,
    domain_name: str,
    domain_version: str,
    operator: str,
    approved: bool,
    private_key: str,
    nonce: int,
    deadline: int | None,
    ttl: int,
    as_json: bool,
):
    """Sign a PermitForAll setting OPERATOR approval for the signer."""
    try:
        owner = Account.from_key(private_key).address
        domain = _domain(ledger, chain_id, domain_name, domain_version)
        message = {
            "owner": owner,
            "operator": operator,
            "approved": approved,
            "nonce": nonce,
            "deadline": _default_deadline(deadline, ttl),
        }
        signature = sign_typed_data(private_key, domain, "PermitForAll", PERMIT_FOR_ALL_TYPES, message)
        digest = hash_typed_data(domain, "PermitForAll", PERMIT_FOR_ALL_TYPES, message)
        rows = {
            **message,
            "digest": "0x" + digest.hex(),
            "signature": "0x" + signature.hex(),
        }
    except (ValueError, TypeError) as exc:
        _handle_cli_error(exc)
        return
    _render("PermitForAll", rows, as_json)


@cli.command("domain-separator")
@_apply(domain_options)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
def domain_separator(
    ledger: str, chain_id: int, domain_name: str, domain_version: str, as_json: bool
):
    """Print the EIP-712 domain separator of a ledger."""
    domain = _domain(ledger, chain_id, domain_name, domain_version)
    rows = {
        **domain.to_dict(),
        "separator": "0x" + hash_domain(domain).hex(),
    }
    _render("Domain", rows, as_json)


@cli.command("property-address")
@click.option("--factory", required=True, callback=_address, help="Factory address")
@click.option("--host", required=True, callback=_address, help="Host account")
@click.option("--slot", required=True, type=int, help="Property slot")
@click.option("--name", required=True, help="Collection name")
@click.option("--symbol", required=True, help="Collection symbol")
@click.option("--base-uri", default="", help="Metadata base URI")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
def property_address(
    factory: str, host: str, slot: int, name: str, symbol: str, base_uri: str, as_json: bool
):
    """Compute where the factory deploys the ledger for (HOST, SLOT)."""
    address = compute_property_address(factory, host, slot, name, symbol, base_uri)
    _render("Property", {"factory": factory, "host": host, "slot": slot, "address": address}, as_json)


def main():
    """Console script entry point."""
    get_logger("nite")
    return cli()


if __name__ == "__main__":
    sys.exit(main() or 0)
