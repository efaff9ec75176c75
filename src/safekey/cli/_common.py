"""Shared utilities for all CLI command modules.

Provides the Rich console, password handling and the vault-opening
helper used by every command group.
"""

from __future__ import annotations

import functools
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

import click
from rich.console import Console

from ..errors import VaultError
from ..sync.engine import SyncManager
from ..vault import Vault

console = Console()
logger = logging.getLogger("safekey.cli")

PASSWORD_ENV = "SAFEKEY_PASSWORD"

vault_option = click.option(
    "--vault", "-v", "vault_ref", default="default", show_default=True,
    help="Vault path or profile name.",
)
password_option = click.option(
    "--password", "-p", envvar=PASSWORD_ENV, default=None,
    help=f"Master password (or set {PASSWORD_ENV}).",
)


def resolve_vault(vault_ref: str) -> Path:
    """Resolve a profile name or path to the vault file."""
    return SyncManager().resolve_vault_path(vault_ref)


def ask_password(password: Optional[str], confirm: bool = False) -> str:
    if password:
        return password
    return click.prompt(
        "Master password", hide_input=True, confirmation_prompt=confirm
    )


@contextmanager
def open_vault(vault_ref: str, password: Optional[str]) -> Iterator[Vault]:
    """Unlock a vault for one command; the key is wiped on exit."""
    with Vault(resolve_vault(vault_ref)) as vault:
        vault.load(ask_password(password))
        yield vault


def handle_errors(func: Callable) -> Callable:
    """Turn vault and input errors into a red one-liner and exit status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (VaultError, ValueError) as exc:
            console.print(f"[bold red]Error:[/] {exc}")
            sys.exit(1)

    return wrapper
